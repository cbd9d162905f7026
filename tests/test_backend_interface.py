"""
Tests for the backend registry and the shared history handling.
"""

import pytest
from conftest import ScriptedBackend

from dbpilot.agent.backend_interface import (
    TGIBackend,
    available_backends,
    load_backend,
)
from dbpilot.config import Settings
from dbpilot.errors import (
    BackendError,
    ConfigurationError,
)


def test_registry_contents() -> None:
    """All built-in providers are registered."""

    assert available_backends() == ["anthropic", "deepseek", "gemini", "openai", "tgi"]


def test_unknown_provider(settings: Settings) -> None:
    """An unregistered provider name is a configuration error."""

    with pytest.raises(ConfigurationError, match="Unsupported LLM provider"):
        load_backend(settings, "llama-on-a-toaster")


@pytest.mark.parametrize("key", [None, "", "your-openai-key"])
def test_missing_api_key(key: str | None) -> None:
    """Unset or placeholder keys are rejected before any SDK call."""

    settings = Settings(_env_file=None, OPENAI_API_KEY=key)

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        load_backend(settings, "openai")


def test_tgi_needs_no_key(settings: Settings) -> None:
    """The self-hosted backend is created from settings alone."""

    backend = load_backend(settings, "TGI")

    assert isinstance(backend, TGIBackend)
    assert backend.temperature == settings.LLM_TEMPERATURE
    assert backend.max_tokens == settings.LLM_MAX_TOKENS


def test_tgi_prompt_rendering(settings: Settings) -> None:
    """TGI receives the system message followed by a speaker-tagged transcript."""

    backend = TGIBackend(settings)
    backend.set_system_message("SYSTEM")

    rendered = backend._render(  # pylint: disable=protected-access
        [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]
    )

    assert rendered == "SYSTEM\n\nUser: q1\nAssistant: a1\nUser: q2\nAssistant:"


def test_history_is_bounded(settings: Settings) -> None:
    """History keeps at most LLM_MAX_MESSAGES entries and always starts with a user turn."""

    small = settings.model_copy(update={"LLM_MAX_MESSAGES": 4})
    backend = ScriptedBackend(small, ["a1", "a2", "a3"])

    for prompt in ("q1", "q2", "q3"):
        backend.generate(prompt)

    assert [m["content"] for m in backend.history] == ["q2", "a2", "q3", "a3"]
    assert backend.history[0]["role"] == "user"


def test_history_sent_to_provider(settings: Settings) -> None:
    """Earlier turns are part of every request."""

    seen: list[list[dict]] = []

    class RecordingBackend(ScriptedBackend):
        def _complete(self, messages):  # type: ignore[no-untyped-def]
            seen.append(list(messages))
            return super()._complete(messages)

    backend = RecordingBackend(settings, ["a1", "a2"])
    backend.generate("q1")
    backend.generate("q2")

    assert [m["content"] for m in seen[1]] == ["q1", "a1", "q2"]


def test_empty_reply_not_recorded(settings: Settings) -> None:
    """An empty reply raises and leaves the history untouched."""

    backend = ScriptedBackend(settings, [""])

    with pytest.raises(BackendError):
        backend.generate("q1")
    assert backend.history == []


def test_reset_keeps_system_message(settings: Settings) -> None:
    """reset() clears turns but not the instruction contract."""

    backend = ScriptedBackend(settings, ["a1"])
    backend.set_system_message("rules")
    backend.generate("q1")

    backend.reset()

    assert backend.history == []
    assert backend.system_message == "rules"
