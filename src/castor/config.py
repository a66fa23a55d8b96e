"""Configuration: frozen Config with explicit model and resolved credentials."""

from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv

from castor.errors import ConfigurationError
from castor.providers.openai import ChatModel

load_dotenv()

_API_KEY_ENV_VAR = "OPENAI_API_KEY"
_BASE_URL_ENV_VAR = "OPENAI_BASE_URL"


@dataclass(frozen=True)
class Config:
    """Immutable configuration for an OpenAI chat completer.

    The model is required. The API key and base URL are auto-resolved from
    the standard environment variables when not given.

    Example:
        config = Config(model="gpt-4o-mini")
        # API key is automatically resolved from OPENAI_API_KEY
        completer = OpenAIChatCompleter.from_config(config)
    """

    model: ChatModel
    #: Auto-resolved from ``OPENAI_API_KEY`` when *None*.
    api_key: str | None = None
    #: Auto-resolved from ``OPENAI_BASE_URL`` when *None*; always ends with ``/``.
    base_url: str | None = None

    def __post_init__(self) -> None:
        """Coerce the model, resolve credentials and validate."""
        try:
            model = ChatModel(self.model)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown model: {self.model!r}",
                hint=f"Supported models: {', '.join(m.value for m in ChatModel)}",
            ) from e
        object.__setattr__(self, "model", model)

        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(_API_KEY_ENV_VAR))
        if not self.api_key:
            raise ConfigurationError(
                "API key required for openai",
                hint=f"Set {_API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )

        base_url = self.base_url
        if base_url is None:
            base_url = os.environ.get(_BASE_URL_ENV_VAR) or None
        if base_url and not base_url.endswith("/"):
            base_url += "/"
        object.__setattr__(self, "base_url", base_url)

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(model={self.model.value!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, base_url={self.base_url!r})"
        )

    __repr__ = __str__
