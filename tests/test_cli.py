from __future__ import annotations

import json

from typer.testing import CliRunner

from bingo_bot import monitor
from bingo_bot.cli import app
from bingo_bot.monitor import HealthCheck
from bingo_bot.version import __version__

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_dry_run_reports_resolved_settings(monkeypatch):
    monkeypatch.setenv("BACKEND_URL", "https://api.bingo.example")
    result = runner.invoke(app, ["run", "--dry-run", "--mode", "webhook"])
    assert result.exit_code == 0
    assert "Mode: webhook" in result.output
    assert "Gateway: wss://api.bingo.example/ws" in result.output
    assert "Settings hash: sha256:" in result.output


def test_run_rejects_bad_config(tmp_path):
    cfg = tmp_path / "bot.yaml"
    cfg.write_text("mode: smoke-signals\n", encoding="utf-8")
    result = runner.invoke(app, ["run", "--config", str(cfg), "--dry-run"])
    assert result.exit_code == 2


def test_simulate_json():
    result = runner.invoke(app, ["simulate", "--seed", "7", "--card", "12", "--json"])
    assert result.exit_code == 0
    summary = json.loads(result.output)
    assert summary["card_number"] == 12
    assert summary["pattern"]


def test_simulate_rejects_card_outside_pool():
    result = runner.invoke(app, ["simulate", "--card", "500"])
    assert result.exit_code == 2


def test_monitor_exit_code_follows_health(monkeypatch):
    async def fake_checks(settings, *, api=None):
        return [HealthCheck("backend", True, settings.backend_url), HealthCheck("gateway", False, "refused")]

    monkeypatch.setattr(monitor, "run_checks", fake_checks)
    result = runner.invoke(app, ["monitor", "--backend-url", "http://backend.test"])
    assert result.exit_code == 1
    assert "backend" in result.output
    assert "DOWN" in result.output
