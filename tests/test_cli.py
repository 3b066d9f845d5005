"""Tests for the command-line client commands."""

from unittest.mock import MagicMock

import httpx
import pytest
from click.testing import CliRunner

from shared_browser import cli as cli_module


def fake_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture()
def runner():
    return CliRunner()


class TestSend:

    def test_posts_action_and_prints_envelope(self, runner, monkeypatch):
        post = MagicMock(return_value=fake_response({"ok": True, "result": {"pageId": "2"}}))
        monkeypatch.setattr(cli_module.httpx, "post", post)

        result = runner.invoke(cli_module.cli, ["send", "newPage", "--url", "http://127.0.0.1:9300/"])

        assert result.exit_code == 0
        assert '"pageId": "2"' in result.output
        url = post.call_args.args[0]
        assert url == "http://127.0.0.1:9300/api/action"
        assert post.call_args.kwargs["json"] == {"action": "newPage"}

    def test_payload_and_timeout(self, runner, monkeypatch):
        post = MagicMock(return_value=fake_response({"ok": True, "result": {"ok": True}}))
        monkeypatch.setattr(cli_module.httpx, "post", post)

        result = runner.invoke(
            cli_module.cli,
            ["send", "click", '{"pageId": "1", "selector": "#go"}', "--timeout-ms", "500", "--url", "http://x"],
        )

        assert result.exit_code == 0
        assert post.call_args.kwargs["json"] == {
            "pageId": "1",
            "selector": "#go",
            "action": "click",
            "timeoutMs": 500.0,
        }

    def test_error_envelope_exits_nonzero(self, runner, monkeypatch):
        post = MagicMock(return_value=fake_response({"ok": False, "error": "Unknown pageId 9"}))
        monkeypatch.setattr(cli_module.httpx, "post", post)

        result = runner.invoke(cli_module.cli, ["send", "goto", '{"pageId": "9"}', "--url", "http://x"])

        assert result.exit_code == 1
        assert "Unknown pageId 9" in result.output

    def test_invalid_payload(self, runner):
        result = runner.invoke(cli_module.cli, ["send", "goto", "{nope", "--url", "http://x"])
        assert result.exit_code == 2
        assert "invalid JSON" in result.output

    def test_unreachable_server(self, runner, monkeypatch):
        monkeypatch.setattr(cli_module.httpx, "post", MagicMock(side_effect=httpx.ConnectError("refused")))

        result = runner.invoke(cli_module.cli, ["send", "newPage", "--url", "http://x"])

        assert result.exit_code == 1
        assert "Cannot reach" in result.output


class TestStatus:

    def test_prints_page_table(self, runner, monkeypatch):
        payload = {"ok": True, "pages": [{"id": "1", "url": "https://example.com/", "isClosed": False}]}
        get = MagicMock(return_value=fake_response(payload))
        monkeypatch.setattr(cli_module.httpx, "get", get)

        result = runner.invoke(cli_module.cli, ["status", "--url", "http://127.0.0.1:9223"])

        assert result.exit_code == 0
        assert "https://example.com/" in result.output
        assert get.call_args.args[0] == "http://127.0.0.1:9223/api/status"


class TestServe:

    def test_options_override_environment(self, runner, monkeypatch, tmp_path):
        captured = {}

        async def fake_serve(settings):
            captured["settings"] = settings
            return 0

        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SHARED_BROWSER_PORT", "9300")
        monkeypatch.setattr(cli_module, "run_server", fake_serve)
        monkeypatch.setattr(cli_module, "configure_logging", MagicMock(return_value=None))

        result = runner.invoke(
            cli_module.cli,
            ["serve", "--port", "9400", "--strict-port", "--extensions", "a,b", "--extension", "c", "--headless"],
        )

        assert result.exit_code == 0
        settings = captured["settings"]
        assert settings.port == 9400
        assert settings.strict_port is True
        assert settings.headless is True
        assert [path.rsplit("/", 1)[-1] for path in settings.extension_dirs] == ["a", "b", "c"]

    def test_launch_failure_exit_status(self, runner, monkeypatch, tmp_path):
        async def failing_serve(settings):
            return 1

        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(cli_module, "run_server", failing_serve)
        monkeypatch.setattr(cli_module, "configure_logging", MagicMock(return_value=None))

        result = runner.invoke(cli_module.cli, ["serve"])

        assert result.exit_code == 1
