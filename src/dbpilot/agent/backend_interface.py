"""
Text-generation backend interface for dbpilot.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tool
invocation, catalog) stays model-agnostic and sees a backend as two operations:
``set_system_message(prompt)`` once, then ``generate(prompt) -> str`` per iteration.

We support these back-ends out of the box:

1. **OpenAI** and **DeepSeek** (OpenAI-compatible) via the ``openai`` SDK.
2. **Anthropic** via the ``anthropic`` SDK.
3. **Gemini** via the ``google-genai`` SDK.
4. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models, over plain httpx.

Each backend keeps its own bounded message history, which is how the model remembers earlier
tool results within a run.  Additional providers can be added by subclassing
:class:`BaseBackend` and registering via :func:`register_backend`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Type,
)

import httpx

from dbpilot.config import Settings
from dbpilot.errors import (
    BackendError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

Message = Dict[str, str]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_BACKEND_REGISTRY: dict[str, Type["BaseBackend"]] = {}


def register_backend(name: str) -> Callable:
    """Decorator to register a backend class under *name*."""

    def wrapper(cls: Type["BaseBackend"]) -> Type["BaseBackend"]:
        _BACKEND_REGISTRY[name] = cls
        cls.provider_name = name
        return cls

    return wrapper


def available_backends() -> List[str]:
    return sorted(_BACKEND_REGISTRY)


def load_backend(settings: Settings, name: str | None = None) -> "BaseBackend":
    """
    Factory that returns an instantiated backend.

    Fallback order:
    1. *name* arg
    2. ``settings.LLM_PROVIDER``
    """

    target = (name or settings.LLM_PROVIDER).lower()
    cls = _BACKEND_REGISTRY.get(target)
    if cls is None:
        raise ConfigurationError(
            f"Unsupported LLM provider: '{target}'. Choose one of: {', '.join(available_backends())}"
        )
    backend = cls(settings)
    logger.info(
        "LLM configuration - provider: %s, model: %s, temperature: %s, max tokens: %d",
        target,
        backend.model_name,
        backend.temperature,
        backend.max_tokens,
    )
    return backend


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseBackend(ABC):
    """Abstract backend that turns a prompt (plus history) into raw model text."""

    provider_name: ClassVar[str] = "base"

    def __init__(self, settings: Settings) -> None:
        self.temperature = settings.LLM_TEMPERATURE
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.max_messages = max(2, settings.LLM_MAX_MESSAGES)
        self.model_name = ""
        self.system_message: str | None = None
        self._history: List[Message] = []

    def set_system_message(self, prompt: str) -> None:
        """Install the instruction contract used for every following call."""
        self.system_message = prompt

    @property
    def history(self) -> List[Message]:
        return list(self._history)

    def reset(self) -> None:
        """Forget the conversation history; the system message is kept."""
        self._history.clear()

    def generate(self, prompt: str) -> str:
        """
        Send *prompt* as the next user message and return the model's reply.

        Raises
        ------
        BackendError
            If the provider returns an empty reply.
        Exception
            Whatever the provider SDK raises (authentication, quota, network).
        """
        self._history.append({"role": "user", "content": prompt})
        try:
            content = self._complete(self.history)
        except Exception:
            self._history.pop()  # keep user/assistant turns paired
            raise

        if not content or not content.strip():
            self._history.pop()
            raise BackendError(f"Empty response from {self.provider_name}")

        logger.debug("%s backend response: %s", self.provider_name, content)
        self._history.append({"role": "assistant", "content": content})
        self._trim_history()
        return content

    def _trim_history(self) -> None:
        # Drop whole user/assistant pairs so the history still starts with a user turn
        while len(self._history) > self.max_messages:
            del self._history[:2]

    @abstractmethod
    def _complete(self, messages: List[Message]) -> str:
        """Return the reply to *messages* (oldest first, last one is the new prompt)."""


# ---------------------------------------------------------------------------
# Concrete backends
# ---------------------------------------------------------------------------
@register_backend("openai")
class OpenAIBackend(BaseBackend):
    """OpenAI chat-completions backend."""

    API_KEY_FIELD: ClassVar[str] = "OPENAI_API_KEY"

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        import openai  # pylint: disable=import-outside-toplevel

        self.model_name = self._model(settings)
        self._client = openai.OpenAI(
            api_key=settings.require_api_key(self.API_KEY_FIELD),
            base_url=self._base_url(settings),
        )

    def _model(self, settings: Settings) -> str:
        return settings.OPENAI_MODEL

    def _base_url(self, settings: Settings) -> str | None:
        return None

    def _complete(self, messages: List[Message]) -> str:
        chat: List[Message] = []
        if self.system_message:
            chat.append({"role": "system", "content": self.system_message})
        chat.extend(messages)

        resp = self._client.chat.completions.create(
            model=self.model_name,
            messages=chat,  # type: ignore[arg-type]
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return resp.choices[0].message.content or ""


@register_backend("deepseek")
class DeepSeekBackend(OpenAIBackend):
    """DeepSeek through its OpenAI-compatible endpoint."""

    API_KEY_FIELD: ClassVar[str] = "DEEPSEEK_API_KEY"

    def _model(self, settings: Settings) -> str:
        return settings.DEEPSEEK_MODEL

    def _base_url(self, settings: Settings) -> str | None:
        return settings.DEEPSEEK_BASE_URL


@register_backend("anthropic")
class AnthropicBackend(BaseBackend):
    """Anthropic Claude-based backend."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        import anthropic  # pylint: disable=import-outside-toplevel

        self.model_name = settings.ANTHROPIC_MODEL
        self._client = anthropic.Anthropic(api_key=settings.require_api_key("ANTHROPIC_API_KEY"))

    def _complete(self, messages: List[Message]) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "temperature": self.temperature,
        }
        if self.system_message:
            kwargs["system"] = self.system_message

        response = self._client.messages.create(**kwargs)

        # Only text blocks carry the reply
        return "".join(block.text for block in response.content if block.type == "text")


@register_backend("gemini")
class GeminiBackend(BaseBackend):
    """Google Gemini backend."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        from google import genai  # pylint: disable=import-outside-toplevel

        self.model_name = settings.GEMINI_MODEL
        self._client = genai.Client(api_key=settings.require_api_key("GEMINI_API_KEY"))

    def _complete(self, messages: List[Message]) -> str:
        from google.genai import types  # pylint: disable=import-outside-toplevel

        contents = [
            types.Content(
                role="user" if msg["role"] == "user" else "model",
                parts=[types.Part(text=msg["content"])],
            )
            for msg in messages
        ]
        config = types.GenerateContentConfig(
            system_instruction=self.system_message or None,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )
        response = self._client.models.generate_content(
            model=self.model_name, contents=contents, config=config
        )
        return response.text or ""


@register_backend("tgi")
class TGIBackend(BaseBackend):
    """TGI-based backend with httpx client."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.model_name = "tgi"
        self._endpoint = settings.TGI_ENDPOINT
        self._timeout = settings.REQUEST_TIMEOUT_SECONDS

    def _render(self, messages: List[Message]) -> str:
        lines: List[str] = []
        if self.system_message:
            lines.append(self.system_message)
            lines.append("")
        for msg in messages:
            speaker = "User" if msg["role"] == "user" else "Assistant"
            lines.append(f"{speaker}: {msg['content']}")
        lines.append("Assistant:")
        return "\n".join(lines)

    def _complete(self, messages: List[Message]) -> str:
        payload = {
            "inputs": self._render(messages),
            "parameters": {
                "max_new_tokens": self.max_tokens,
                "temperature": self.temperature,
                "stop": ["User:", "</s>"],
            },
        }
        with httpx.Client(timeout=self._timeout) as client:
            resp = client.post(self._endpoint, json=payload)
            resp.raise_for_status()
            return str(resp.json()["generated_text"]).strip()
