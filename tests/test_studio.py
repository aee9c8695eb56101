"""
tests/test_studio.py - CLI Tests (click CliRunner)
"""

import json

import yaml
from click.testing import CliRunner

from studio import cli


class TestRun:

    def test_json_output(self):
        result = CliRunner().invoke(cli, ["run", "--scenario", "NO_ERROR", "--duration", "5000",
                                          "--output", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["config"]["scenario"] == "NO_ERROR"
        assert data["statistics"]["failed"] == 0

    def test_flags_override_scenario(self):
        result = CliRunner().invoke(cli, ["run", "--scenario", "NO_ERROR", "--mode", "BOUNDED",
                                          "--duration", "3000", "--output", "json"])
        assert json.loads(result.stdout)["config"]["mode"] == "BOUNDED"

    def test_receipts_written(self, tmp_path):
        path = tmp_path / "receipts.jsonl"
        result = CliRunner().invoke(cli, ["run", "--mode", "TRADITIONAL", "--duration", "5000",
                                          "--receipts", str(path), "--output", "json"])
        assert result.exit_code == 0
        lines = path.read_text().splitlines()
        assert lines, "ledger should not be empty"
        assert json.loads(lines[-1])["receipt_type"] == "sim_result"


class TestCompare:

    def test_counterpart_pair(self):
        result = CliRunner().invoke(cli, ["compare", "--mode", "REACTIVE", "--duration", "6000",
                                          "--output", "json"])
        assert result.exit_code == 0
        assert set(json.loads(result.stdout)) == {"REACTIVE", "BOUNDED"}


class TestValidateConfig:

    def test_valid(self, tmp_path):
        path = tmp_path / "ok.yaml"
        path.write_text(yaml.safe_dump({"mode": "BOUNDED"}))
        result = CliRunner().invoke(cli, ["validate-config", str(path), "--output", "json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["valid"]

    def test_invalid(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"capacity": -1}))
        result = CliRunner().invoke(cli, ["validate-config", str(path), "--output", "json"])
        assert result.exit_code == 1
        assert not json.loads(result.stdout)["valid"]


class TestFormalize:

    def test_without_key_fails(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("API_KEY", raising=False)
        result = CliRunner().invoke(cli, ["formalize", "a pump"])
        assert result.exit_code == 1
