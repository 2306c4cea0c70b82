from __future__ import annotations

from pydantic import ValidationError
import pytest

from fts_bridge.config import Settings, get_settings, reset_settings


@pytest.mark.unit
def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FTS_BRIDGE_LOG_LEVEL",
        "FTS_BRIDGE_LOCK_TIMEOUT_MS",
        "FTS_BRIDGE_READ_BUSY_TIMEOUT_MS",
        "FTS_BRIDGE_TRACING_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.log_level == "INFO"
    assert settings.lock_timeout_ms == 0
    assert settings.read_busy_timeout_ms == 30000
    assert settings.max_term_length == 245
    assert settings.tracing_enabled is True


@pytest.mark.unit
def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FTS_BRIDGE_DEFAULT_SNIPPET_LENGTH", "80")
    monkeypatch.setenv("FTS_BRIDGE_WILDCARD_MAX_EXPANSION", "25")

    settings = Settings(_env_file=None)

    assert settings.default_snippet_length == 80
    assert settings.wildcard_max_expansion == 25


@pytest.mark.unit
def test_log_level_is_normalised() -> None:
    assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"


@pytest.mark.unit
def test_unknown_log_level_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Unknown log level"):
        Settings(_env_file=None, log_level="chatty")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("field", "value"),
    [("max_term_length", 0), ("max_term_length", 5000), ("lock_timeout_ms", -1), ("default_snippet_length", 0)],
)
def test_out_of_range_values_are_rejected(field: str, value: int) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


@pytest.mark.unit
def test_get_settings_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    monkeypatch.setenv("FTS_BRIDGE_DEFAULT_SNIPPET_LENGTH", "42")

    assert get_settings() is first

    reset_settings()

    assert get_settings() is not first
    assert get_settings().default_snippet_length == 42
