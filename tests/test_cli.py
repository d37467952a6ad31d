"""
Tests for the command line interface.
"""

import json

from click.testing import CliRunner

from audioporter.cli import main


class TestConfigCommand:
    """Tests for `audioporter config`."""

    def test_json_output(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config", "--json"], env={"PORT": "4567"})
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["server"]["port"] == 4567
        assert data["relay"]["ping_interval"] == 30.0

    def test_table_output(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config"])
        assert result.exit_code == 0
        assert "relay.ping_interval" in result.output

    def test_bad_config_file(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("{broken")
        runner = CliRunner()
        result = runner.invoke(main, ["config", "--config", str(path)])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestDiscoverCommand:
    """Tests for `audioporter discover`."""

    def test_unreachable_relay(self):
        runner = CliRunner()
        result = runner.invoke(main, ["discover", "ws://127.0.0.1:1", "--timeout", "1"])
        assert result.exit_code == 1
        assert "Could not connect" in result.output
