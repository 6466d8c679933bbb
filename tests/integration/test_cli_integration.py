"""Integration tests for the inkwell CLI."""

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
from typer.testing import CliRunner

from inkwell.__main__ import app
from inkwell.defaults import config_dir
from inkwell.local_storage import LocalStorage
from inkwell.session import InkwellSession

FOG = "The fog comes\non little cat feet.\n\nIt sits looking\nover harbor and city"


def test_init_creates_config_and_database(isolated_dirs: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert (config_dir() / "config.toml").exists()
    assert (isolated_dirs / "data" / "inkwell" / "inkwell.db").exists()


def test_init_prunes_old_event_logs(isolated_dirs: Path, cli_runner: CliRunner) -> None:
    old = isolated_dirs / "observability" / "2000-01-01_events.jsonl"
    old.write_text("{}\n")

    result = cli_runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert not old.exists()
    assert "Removed 1 event log files" in result.output


def test_commands_need_a_config(isolated_dirs: Path, cli_runner: CliRunner) -> None:
    """Test a missing config file exits with a hint instead of a traceback."""
    result = cli_runner.invoke(app, ["poems"])

    assert result.exit_code == 1
    assert "inkwell init" in result.output


def test_stats_reports_counts(tmp_path: Path, cli_runner: CliRunner) -> None:
    poem_file = tmp_path / "fog.txt"
    poem_file.write_text(FOG)

    result = cli_runner.invoke(app, ["stats", str(poem_file)])

    assert result.exit_code == 0
    assert "Words: 14" in result.output
    assert "Lines: 4" in result.output
    assert "Stanzas: 2" in result.output


def test_stats_missing_file(tmp_path: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["stats", str(tmp_path / "nope.txt")])
    assert result.exit_code == 1


def test_new_then_list_and_search(
    inkwell_home: Path, tmp_path: Path, cli_runner: CliRunner
) -> None:
    """Test a created draft is stored on-device and shows up in listings."""
    poem_file = tmp_path / "fog.txt"
    poem_file.write_text(FOG)

    created = cli_runner.invoke(
        app, ["new", "--title", "Fog", "--file", str(poem_file), "--tag", "weather"]
    )
    assert created.exit_code == 0
    assert "Created draft" in created.output
    assert "14 words" in created.output

    listed = cli_runner.invoke(app, ["poems"])
    assert listed.exit_code == 0
    assert "Fog" in listed.output
    assert "draft" in listed.output

    searched = cli_runner.invoke(app, ["poems", "--search", "weather"])
    assert "Fog" in searched.output

    missing = cli_runner.invoke(app, ["poems", "--status", "complete"])
    assert "No poems found" in missing.output

    stored = json.loads(LocalStorage().get_item("@inkwell_poems"))
    assert [p["title"] for p in stored["poems"]] == ["Fog"]


def test_new_prints_server_id_after_reconciling(
    inkwell_home: Path, cli_runner: CliRunner, monkeypatch
) -> None:
    """Test the id printed by new is the one later commands can find."""
    monkeypatch.setenv("INKWELL_BACKEND_URL", "https://db.example.com")
    monkeypatch.setenv("INKWELL_ANON_KEY", "anon")
    monkeypatch.setenv("INKWELL_USER_ID", "u1")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/rest/v1/poems":
            return httpx.Response(201, json=[{**json.loads(request.content), "id": "srv-poem-1"}])
        return httpx.Response(201, json=[])

    monkeypatch.setattr(
        "inkwell.__main__.InkwellSession",
        lambda config: InkwellSession(config, transport=httpx.MockTransport(handler)),
    )

    result = cli_runner.invoke(app, ["new", "--title", "Fog", "--file", "-"], input=FOG)

    assert result.exit_code == 0, result.output
    assert "Created draft srv-poem-1" in result.output
    stored = json.loads(LocalStorage().get_item("@inkwell_poems"))["poems"]
    assert [p["id"] for p in stored] == ["srv-poem-1"]


def test_sync_without_backend_fails(inkwell_home: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "no backend url and anon_key configured" in result.output


def test_prompt_without_backend_fails(inkwell_home: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["prompt"])
    assert result.exit_code == 1


def test_keys_set_show_clear(inkwell_home: Path, cli_runner: CliRunner) -> None:
    """Test provider keys are stored masked and can be cleared."""
    saved = cli_runner.invoke(app, ["keys", "set", "anthropic", "sk-ant-secret-1234"])
    assert saved.exit_code == 0
    assert "********1234" in saved.output
    assert "secret" not in saved.output

    shown = cli_runner.invoke(app, ["keys", "show"])
    assert "anthropic: ********1234" in shown.output
    assert "elevenlabs: not set" in shown.output

    cli_runner.invoke(app, ["keys", "clear", "anthropic"])
    shown = cli_runner.invoke(app, ["keys", "show"])
    assert "anthropic: not set" in shown.output


def test_keys_reject_unknown_provider(inkwell_home: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["keys", "set", "mistral", "sk-1"])
    assert result.exit_code == 1
    assert "Unknown provider" in result.output


def test_review_requires_key(inkwell_home: Path, cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["review", "abc"])
    assert result.exit_code == 1
    assert "no anthropic key" in result.output


def test_review_attaches_generated_review(inkwell_home: Path, cli_runner: CliRunner) -> None:
    """Test the review command finds a poem by id prefix and stores the result."""
    cli_runner.invoke(app, ["new", "--title", "Fog", "--file", "-"], input=FOG)
    cli_runner.invoke(app, ["keys", "set", "anthropic", "sk-ant-test"])
    poem_id = json.loads(LocalStorage().get_item("@inkwell_poems"))["poems"][0]["id"]

    answer = {
        "summary": "Fog as a quiet cat.",
        "themes": [{"name": "stillness", "explanation": "the harbor waits"}],
        "literary_devices": [],
        "structure_analysis": "Two short stanzas.",
        "interpretation": "Change arrives softly.",
    }
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(answer)))],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20),
    )
    with patch(
        "inkwell.providers.reviewer.litellm.acompletion", new=AsyncMock(return_value=response)
    ) as mock_completion:
        result = cli_runner.invoke(app, ["review", poem_id[:8], "--tone", "casual"])

    assert result.exit_code == 0, result.output
    assert "Fog as a quiet cat." in result.output
    assert mock_completion.call_args.kwargs["api_key"] == "sk-ant-test"

    stored = json.loads(LocalStorage().get_item("@inkwell_poems"))["poems"][0]
    assert stored["review"]["summary"] == "Fog as a quiet cat."
    assert stored["review"]["tone"] == "casual"


def test_review_unknown_poem(inkwell_home: Path, cli_runner: CliRunner) -> None:
    cli_runner.invoke(app, ["keys", "set", "anthropic", "sk-ant-test"])
    result = cli_runner.invoke(app, ["review", "zzzz"])
    assert result.exit_code == 1
    assert "No poem matches 'zzzz'" in result.output


def _use_review_model(model: str) -> None:
    config_file = config_dir() / "config.toml"
    text = config_file.read_text()
    config_file.write_text(
        text.replace('model = "anthropic/claude-sonnet-4-20250514"', f'model = "{model}"')
    )


def test_review_sends_key_of_model_provider(inkwell_home: Path, cli_runner: CliRunner) -> None:
    """Test an OpenAI review model gets the openai key, never the anthropic one."""
    _use_review_model("openai/gpt-4o-mini")
    cli_runner.invoke(app, ["new", "--title", "Fog", "--file", "-"], input=FOG)
    cli_runner.invoke(app, ["keys", "set", "anthropic", "sk-ant-test"])
    poem_id = json.loads(LocalStorage().get_item("@inkwell_poems"))["poems"][0]["id"]

    missing = cli_runner.invoke(app, ["review", poem_id])
    assert missing.exit_code == 1
    assert "no openai key" in missing.output

    cli_runner.invoke(app, ["keys", "set", "openai", "sk-openai-test"])
    answer = {
        "summary": "Fog as a quiet cat.",
        "themes": [],
        "literary_devices": [],
        "structure_analysis": "Two short stanzas.",
        "interpretation": "Change arrives softly.",
    }
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(answer)))],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20),
    )
    with patch(
        "inkwell.providers.reviewer.litellm.acompletion", new=AsyncMock(return_value=response)
    ) as mock_completion:
        result = cli_runner.invoke(app, ["review", poem_id])

    assert result.exit_code == 0, result.output
    assert mock_completion.call_args.kwargs["api_key"] == "sk-openai-test"
    assert mock_completion.call_args.kwargs["model"] == "openai/gpt-4o-mini"


def test_keys_validate_reports_result(inkwell_home: Path, cli_runner: CliRunner) -> None:
    """Test a stored review key is checked with the configured model."""
    cli_runner.invoke(app, ["keys", "set", "anthropic", "sk-ant-test"])

    with patch(
        "inkwell.providers.reviewer.litellm.acompletion", new=AsyncMock(return_value=None)
    ):
        ok = cli_runner.invoke(app, ["keys", "validate", "anthropic"])
    assert ok.exit_code == 0, ok.output
    assert "anthropic key works" in ok.output

    with patch(
        "inkwell.providers.reviewer.litellm.acompletion",
        new=AsyncMock(side_effect=RuntimeError("invalid x-api-key")),
    ):
        rejected = cli_runner.invoke(app, ["keys", "validate", "anthropic"])
    assert rejected.exit_code == 1
    assert "anthropic key was rejected" in rejected.output


def test_keys_validate_needs_matching_model(inkwell_home: Path, cli_runner: CliRunner) -> None:
    cli_runner.invoke(app, ["keys", "set", "openai", "sk-openai-test"])
    result = cli_runner.invoke(app, ["keys", "validate", "openai"])
    assert result.exit_code == 1
    assert "does not use openai" in result.output
