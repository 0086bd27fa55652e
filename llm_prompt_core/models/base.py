"""
Base class for LLM model wrappers.

This module defines the abstract interface the tutor's model wrappers
implement, plus the shared error translation into the project's backend
error types.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, NoReturn

from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from langchain_core.language_models.llms import LLM

from exceptions import (
    BackendError,
    BackendUnavailableError,
    InvalidCredentialError,
    RateLimitedError,
)


class BaseLLMModel(LLM, ABC):
    """
    Abstract base class for LLM provider wrappers.

    Extends LangChain's LLM base class so a model can be used in a chain for
    plain prompts; chat-style calls with history and images are exposed by the
    concrete wrappers.

    Subclasses must implement:
    - _call(): Generate text from a single prompt
    - _llm_type: Model type identifier
    - _identifying_params: Model configuration parameters

    Provides shared functionality:
    - _get_api_key(): Resolve API key from instance or environment
    - _initialize_client(): Initialize SDK client with error handling
    - _handle_api_error(): Translate SDK errors into backend errors
    """

    def _get_api_key(
        self, env_var_name: str, provider_name: str, required: bool = True
    ) -> str | None:
        """
        Resolve API key from instance attribute or environment variable.

        Raises:
            InvalidCredentialError: If required=True and no key is configured
        """
        api_key = getattr(self, "api_key", None)
        resolved_key = api_key or os.getenv(env_var_name)

        if required and not resolved_key:
            raise InvalidCredentialError(
                f"{env_var_name} environment variable must be set for {provider_name} models."
            )

        return resolved_key

    def _initialize_client(
        self, client_class: type[Any], api_key: str, package_name: str, **client_kwargs: Any
    ) -> Any:
        """
        Initialize an SDK client with standardized error handling.

        Raises:
            ImportError: If the SDK package is not installed
        """
        try:
            return client_class(api_key=api_key, **client_kwargs)
        except (ImportError, NameError):
            raise ImportError(
                f"{package_name} package not installed. Install it with: pip install {package_name}"
            )

    def _handle_api_error(self, exception: Exception, provider_name: str) -> NoReturn:
        """
        Translate an SDK exception into a backend error and raise it.

        Classification uses the HTTP status / error code the SDKs attach:
        429 or ``rate_limit_exceeded`` → RateLimitedError, 401/403 or
        ``invalid_api_key`` → InvalidCredentialError, anything else →
        BackendUnavailableError.
        """
        if isinstance(exception, BackendError):
            raise exception

        status = getattr(exception, "status_code", None)
        code = getattr(exception, "code", None)
        detail = f"{provider_name} API call failed: {exception.__class__.__name__}: {exception}"

        if status == 429 or code == "rate_limit_exceeded":
            raise RateLimitedError(
                "Rate limit exceeded. Please try again in a moment."
            ) from exception
        if status in (401, 403) or code == "invalid_api_key":
            raise InvalidCredentialError(
                f"Invalid API key. Please check your {provider_name} configuration."
            ) from exception
        if isinstance(exception, (ConnectionError, TimeoutError)):
            raise BackendUnavailableError(f"{provider_name} API unreachable: {exception}") from exception

        raise BackendUnavailableError(detail) from exception

    @property
    @abstractmethod
    def _llm_type(self) -> str:
        """String identifier for this LLM type (e.g., "openai")."""
        pass

    @property
    @abstractmethod
    def _identifying_params(self) -> dict[str, Any]:
        """Model configuration (model_name, temperature, ...)."""
        pass

    @abstractmethod
    def _call(
        self,
        prompt: str,
        stop: Sequence[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> str:
        """
        Generate text from a prompt.

        Raises:
            BackendError: If the model fails to generate a response
        """
        pass
