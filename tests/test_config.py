from pathlib import Path

import pytest

from chatline.config import DEFAULT_MODEL, get_settings
from chatline.errors import ApiKeyNotConfiguredError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("CHATLINE_API_KEY", "ANTHROPIC_API_KEY", "CHATLINE_MODEL", "CHATLINE_MAX_TOKENS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = get_settings()

    assert settings.model == DEFAULT_MODEL
    assert settings.max_tokens == 8192
    assert settings.storage_key == "chatState"
    assert settings.prepopulate is False


def test_env_prefix_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATLINE_MODEL", "openai:gpt-4o")
    monkeypatch.setenv("CHATLINE_MAX_TOKENS", "100")

    settings = get_settings(max_tokens=42, api_base=None)

    assert settings.model == "openai:gpt-4o"
    assert settings.max_tokens == 42


def test_api_key_falls_back_to_anthropic_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")

    assert get_settings().resolved_api_key == "sk-test"


def test_missing_api_key_raises() -> None:
    with pytest.raises(ApiKeyNotConfiguredError):
        _ = get_settings().resolved_api_key


def test_env_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("CHATLINE_API_KEY=from-dotenv\n", encoding="utf-8")

    assert get_settings().resolved_api_key == "from-dotenv"


def test_resolve_home_creates_directory(tmp_path: Path) -> None:
    home = tmp_path / "nested" / "home"

    assert get_settings(home=home).resolve_home() == home.resolve()
    assert home.is_dir()
