"""Tests for the nanoscout CLI."""

import json

from typer.testing import CliRunner

from nanoscout.cli.main import app

runner = CliRunner()


def write_settings(tmp_path, **extra):
    path = tmp_path / "settings.json"
    data = {"engine": {"dataDir": str(tmp_path / "data")}, **extra}
    path.write_text(json.dumps(data))
    return path


class TestSetupCommands:
    """Test adding and removing plugin instances."""

    def test_add_runs_onboarding(self, tmp_path):
        path = write_settings(tmp_path)

        result = runner.invoke(app, ["add", "brave-search", "-i", "search", "-s", str(path)], input="brave-key\n")

        assert result.exit_code == 0, result.output
        saved = json.loads(path.read_text())
        assert saved["plugins"] == [
            {"instanceId": "search", "pluginId": "brave-search", "enabled": True, "settings": {}},
        ]
        auth = json.loads((tmp_path / "data" / "auth.json").read_text())
        assert auth["search"] == {"apiKey": "brave-key"}

    def test_add_provider(self, tmp_path):
        path = write_settings(tmp_path)

        result = runner.invoke(
            app,
            ["add", "litellm", "--provider", "-s", str(path)],
            input="sk-test\nopenai/gpt-4o-mini\n",
        )

        assert result.exit_code == 0, result.output
        saved = json.loads(path.read_text())
        assert saved["plugins"][0]["settings"] == {"model": "openai/gpt-4o-mini"}
        assert saved["inference"]["providers"] == [{"id": "litellm", "options": {}}]

    def test_add_cancelled(self, tmp_path):
        path = write_settings(tmp_path)

        result = runner.invoke(app, ["add", "telegram", "-s", str(path)], input="\n")

        assert result.exit_code == 1
        assert "Cancelled" in result.output
        assert json.loads(path.read_text()).get("plugins") is None

    def test_add_unknown_plugin(self, tmp_path):
        result = runner.invoke(app, ["add", "nope", "-s", str(write_settings(tmp_path))])

        assert result.exit_code == 1
        assert "Unknown plugin" in result.output

    def test_remove(self, tmp_path):
        path = write_settings(
            tmp_path,
            plugins=[{"instanceId": "llm", "pluginId": "litellm"}],
            inference={"providers": [{"id": "llm"}, {"id": "other"}]},
        )
        (tmp_path / "data").mkdir()
        (tmp_path / "data" / "auth.json").write_text(json.dumps({"llm": {"apiKey": "x"}}))

        result = runner.invoke(app, ["remove", "llm", "-s", str(path)])

        assert result.exit_code == 0, result.output
        saved = json.loads(path.read_text())
        assert saved["plugins"] == []
        assert [p["id"] for p in saved["inference"]["providers"]] == ["other"]
        assert json.loads((tmp_path / "data" / "auth.json").read_text()) == {}

    def test_remove_unknown(self, tmp_path):
        result = runner.invoke(app, ["remove", "ghost", "-s", str(write_settings(tmp_path))])

        assert result.exit_code == 1


class TestInspectionCommands:
    def test_plugins_lists_catalog(self, tmp_path):
        path = write_settings(tmp_path, plugins=[{"instanceId": "old", "pluginId": "retired"}])

        result = runner.invoke(app, ["plugins", "-s", str(path)])

        assert result.exit_code == 0
        assert "telegram" in result.output
        assert "brave-search" in result.output
        assert "unknown plugin retired" in result.output

    def test_status(self, tmp_path):
        path = write_settings(tmp_path, inference={"providers": [{"id": "llm", "model": "m"}]})

        result = runner.invoke(app, ["status", "-s", str(path)])

        assert result.exit_code == 0
        assert "llm" in result.output

    def test_sessions_empty(self, tmp_path):
        result = runner.invoke(app, ["sessions", "-s", str(write_settings(tmp_path))])

        assert result.exit_code == 0
        assert "No sessions yet" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "nanoscout v" in result.output
