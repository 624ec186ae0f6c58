import importlib
import json
from pathlib import Path

import pytest
from conftest import FakeOpener
from typer.testing import CliRunner

from chatline.conversation import ConversationStore, FileStorage, Turn

cli_app_module = importlib.import_module("chatline.cli.app")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("CHATLINE_API_KEY", "ANTHROPIC_API_KEY", "CHATLINE_PREPOPULATE", "CHATLINE_HOME"):
        monkeypatch.delenv(name, raising=False)


def _seed(home: Path, *turns: Turn) -> None:
    store = ConversationStore(FileStorage(home))
    for turn in turns:
        store.append(turn)


def test_history_reports_empty_conversation(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli_app_module.app, ["history", "--home", str(tmp_path / "home")])

    assert result.exit_code == 0
    assert "No conversation yet." in result.output


def test_history_prints_stored_turns(tmp_path: Path) -> None:
    home = tmp_path / "home"
    _seed(home, Turn.user("what is 2+2"), Turn.assistant("It is 4."))

    runner = CliRunner()
    result = runner.invoke(cli_app_module.app, ["history", "--home", str(home)])

    assert result.exit_code == 0
    assert "what is 2+2" in result.output
    assert "It is 4." in result.output


def test_clear_erases_stored_conversation(tmp_path: Path) -> None:
    home = tmp_path / "home"
    _seed(home, Turn.user("hello"))

    runner = CliRunner()
    result = runner.invoke(cli_app_module.app, ["clear", "--home", str(home)])

    assert result.exit_code == 0
    assert FileStorage(home).get("chatState") is None


def test_export_writes_sanitized_html(tmp_path: Path) -> None:
    home = tmp_path / "home"
    _seed(home, Turn.user("<script>alert(1)</script>"), Turn.assistant("```python\nx = 1\n```"))
    target = tmp_path / "out" / "chat.html"

    runner = CliRunner()
    result = runner.invoke(cli_app_module.app, ["export", str(target), "--home", str(home)])

    assert result.exit_code == 0
    html = target.read_text(encoding="utf-8")
    assert "<script" not in html
    assert "<summary>python</summary>" in html


def test_chat_reports_missing_api_key(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli_app_module.app, ["chat", "--home", str(tmp_path / "home")])

    assert result.exit_code == 1
    assert "API key not configured" in result.output


def test_chat_runs_interactive_loop(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured = {}
    opener = FakeOpener()

    def _fake_build_stream_opener(settings):
        captured["model"] = settings.model
        return opener

    async def _fake_run_chat(manager, renderer) -> None:
        captured["turns"] = manager.turns

    monkeypatch.setattr(cli_app_module, "build_stream_opener", _fake_build_stream_opener)
    monkeypatch.setattr(cli_app_module, "run_chat", _fake_run_chat)

    runner = CliRunner()
    result = runner.invoke(
        cli_app_module.app,
        ["chat", "--home", str(tmp_path / "home"), "--model", "openai:gpt-4o-mini", "--prepopulate"],
    )

    assert result.exit_code == 0
    assert captured["model"] == "openai:gpt-4o-mini"
    assert len(captured["turns"]) == 5
    stored = json.loads(FileStorage(tmp_path / "home").get("chatState") or "[]")
    assert len(stored) == 5
