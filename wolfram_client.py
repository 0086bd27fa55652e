"""
Wolfram Alpha visualization client.

Turns the visualization query attached to a tutor reply into the URL of a
rendered image (plot, number line, fraction diagram, ...).
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import aiohttp
from dotenv import load_dotenv

from constants import WOLFRAM_API_URL, WOLFRAM_TIMEOUT_SECONDS
from exceptions import VisualizationError
from metrics import track_visualization_call

load_dotenv()

logger = logging.getLogger(__name__)


def extract_image_url(payload: dict[str, Any]) -> Optional[str]:
    """
    Find the first image in a Wolfram Alpha JSON result.

    Pods are scanned in order; the input-interpretation pod is skipped
    when any other pod carries an image.
    """
    result = payload.get("queryresult") or {}
    if not result.get("success"):
        return None

    fallback: Optional[str] = None
    for pod in result.get("pods") or []:
        for subpod in pod.get("subpods") or []:
            src = (subpod.get("img") or {}).get("src")
            if not src:
                continue
            if pod.get("id") == "Input":
                fallback = fallback or src
                continue
            return src
    return fallback


class WolframVisualizer:
    """Visualizer collaborator backed by the Wolfram Alpha Full Results API."""

    def __init__(
        self,
        app_id: Optional[str] = None,
        api_url: str = WOLFRAM_API_URL,
        timeout: float = WOLFRAM_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.app_id = app_id or os.getenv("WOLFRAM_APP_ID", "")
        self.api_url = api_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    def is_enabled(self) -> bool:
        return bool(self.app_id)

    async def fetch(self, query: str) -> str:
        """
        Fetch a visualization image for ``query``.

        Returns:
            Image URL

        Raises:
            VisualizationError: If the service is not configured, fails, or
                                returns no image
        """
        if not query or not query.strip():
            raise VisualizationError(query, "empty query")
        if not self.is_enabled():
            raise VisualizationError(query, "WOLFRAM_APP_ID is not configured")

        params = {
            "appid": self.app_id,
            "input": query,
            "output": "json",
            "format": "image",
        }

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(timeout=self.timeout)
        try:
            with track_visualization_call():
                async with session.get(self.api_url, params=params) as response:
                    if response.status != 200:
                        raise VisualizationError(query, f"HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except VisualizationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise VisualizationError(query, str(e)) from e
        finally:
            if owns_session:
                await session.close()

        image_url = extract_image_url(payload)
        if image_url is None:
            raise VisualizationError(query, "no image in result")
        logger.debug("Visualization found for query %r", query)
        return image_url

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
