"""
Tests for ConversationHistoryStore and the history cache ports.
"""

import json

import pytest

from sessions.history_store import (
    ConversationHistoryStore,
    HistoryCache,
    InMemoryHistoryCache,
    JsonFileHistoryCache,
)
from sessions.types import ImageContent, Message, Role, Step


def user(text):
    return Message(role=Role.USER, content=text)


def assistant(text, **kwargs):
    return Message(role=Role.ASSISTANT, content=text, **kwargs)


class BrokenCache(HistoryCache):
    def load(self, key):
        raise OSError("disk on fire")

    def save(self, key, entries):
        raise OSError("disk on fire")


class TestAppend:
    def test_append_preserves_order(self):
        store = ConversationHistoryStore()
        messages = [user("a"), assistant("b"), user("c")]
        for message in messages:
            store.append(message)

        assert store.messages == tuple(messages)
        assert len(store) == 3

    def test_duplicate_id_is_rejected(self):
        store = ConversationHistoryStore()
        message = user("a")
        store.append(message)

        with pytest.raises(ValueError, match="already in history"):
            store.append(message)
        assert len(store) == 1

    def test_get_by_id(self):
        store = ConversationHistoryStore()
        message = store.append(user("a"))

        assert store.get(message.id) is message
        assert store.get("missing") is None

    def test_messages_view_is_a_snapshot(self):
        store = ConversationHistoryStore()
        store.append(user("a"))
        view = store.messages
        store.append(user("b"))

        assert len(view) == 1


class TestRecentContext:
    @pytest.mark.parametrize("count,k", [(0, 5), (3, 5), (5, 5), (8, 5), (8, 2)])
    def test_returns_min_k_n_most_recent_oldest_first(self, count, k):
        store = ConversationHistoryStore()
        for i in range(count):
            store.append(user(f"m{i}") if i % 2 == 0 else assistant(f"m{i}"))

        context = store.recent_context(k)

        expected = [f"m{i}" for i in range(max(0, count - k), count)]
        assert [text for _, text in context] == expected
        assert len(context) == min(k, count)

    def test_pairs_carry_role_values(self):
        store = ConversationHistoryStore()
        store.append(user("¿Cuánto es 3/4 + 1/4?"))
        store.append(assistant("1"))

        assert store.recent_context(5) == [("user", "¿Cuánto es 3/4 + 1/4?"), ("assistant", "1")]

    def test_images_are_opaque_markers(self):
        store = ConversationHistoryStore()
        store.append(Message(role=Role.USER, content=ImageContent("data:image/png;base64,AAAA")))

        assert store.recent_context(5) == [("user", "[PHOTO]")]

    def test_artifacts_are_skipped(self):
        store = ConversationHistoryStore()
        store.append(user("a"))
        store.append(assistant("Hello RC. The following AI models...", artifact=True))
        store.append(user("b"))

        assert store.recent_context(5) == [("user", "a"), ("user", "b")]

    def test_non_positive_k_is_empty(self):
        store = ConversationHistoryStore()
        store.append(user("a"))

        assert store.recent_context(0) == []


class TestVisualizationAndReset:
    def test_attach_visualization_keeps_id_and_position(self):
        store = ConversationHistoryStore()
        store.append(user("q"))
        reply = store.append(assistant("a", visualization_query="plot x^2"))
        store.append(user("next"))

        updated = store.attach_visualization(reply.id, "https://img.example/plot.gif")

        assert updated.id == reply.id
        assert store.messages[1] is updated
        assert updated.visualization == "https://img.example/plot.gif"
        assert reply.visualization is None

    def test_attach_visualization_unknown_id(self):
        store = ConversationHistoryStore()
        with pytest.raises(KeyError):
            store.attach_visualization("nope", "img")

    def test_reset_leaves_only_seed(self):
        store = ConversationHistoryStore()
        store.append(user("a"))
        store.append(assistant("b"))
        seed = assistant("¡Hola!", auto_narrate=True)

        store.reset(seed)

        assert store.messages == (seed,)
        assert store.get(seed.id) is seed


class TestCache:
    def test_appends_are_persisted_without_image_data(self, history_cache):
        store = ConversationHistoryStore(cache=history_cache, cache_key="chat_history:standard")
        store.append(Message(role=Role.USER, content=ImageContent("data:image/png;base64,AAAA")))

        entries = history_cache.load("chat_history:standard")
        assert entries[0]["content"] == {"image": None}

    def test_restore_round_trip(self, history_cache):
        first = ConversationHistoryStore(cache=history_cache, cache_key="k")
        reply = assistant("paso", steps=(Step(1, "paso"),), auto_narrate=True)
        first.append(user("q"))
        first.append(reply)

        second = ConversationHistoryStore(cache=history_cache, cache_key="k")
        assert second.restore() is True

        restored = second.messages[1]
        assert restored.id == reply.id
        assert restored.steps == (Step(1, "paso"),)
        assert restored.auto_narrate is True

    def test_snapshot_is_bounded(self, history_cache):
        store = ConversationHistoryStore(cache=history_cache, cache_key="k", cache_max_entries=3)
        for i in range(5):
            store.append(user(str(i)))

        assert [entry["content"] for entry in history_cache.load("k")] == ["2", "3", "4"]

    def test_restore_without_snapshot(self, history_cache):
        store = ConversationHistoryStore(cache=history_cache, cache_key="empty")
        assert store.restore() is False
        assert len(store) == 0

    def test_cache_failures_fail_open(self):
        store = ConversationHistoryStore(cache=BrokenCache(), cache_key="k")

        assert store.restore() is False
        store.append(user("still works"))
        assert len(store) == 1

    def test_corrupt_entries_are_ignored(self, history_cache):
        history_cache.save("k", [{"role": "robot"}])
        store = ConversationHistoryStore(cache=history_cache, cache_key="k")

        assert store.restore() is False
        assert len(store) == 0


class TestJsonFileHistoryCache:
    def test_save_and_load(self, tmp_path):
        cache = JsonFileHistoryCache(tmp_path / "history")
        cache.save("chat_history:developer", [{"id": "1"}])

        assert cache.load("chat_history:developer") == [{"id": "1"}]
        # Key characters unsafe for file names are replaced
        assert (tmp_path / "history" / "chat_history_developer.json").exists()

    def test_missing_file_is_a_miss(self, tmp_path):
        assert JsonFileHistoryCache(tmp_path).load("nothing") is None

    def test_non_list_snapshot_raises(self, tmp_path):
        (tmp_path / "k.json").write_text(json.dumps({"not": "a list"}), encoding="utf-8")

        with pytest.raises(ValueError):
            JsonFileHistoryCache(tmp_path).load("k")

    def test_in_memory_cache_copies_entries(self):
        cache = InMemoryHistoryCache()
        entries = [{"id": "1"}]
        cache.save("k", entries)
        entries.append({"id": "2"})

        assert cache.load("k") == [{"id": "1"}]
