import json
import os

import cv2
from typer.testing import CliRunner

from cli import app, newest_image

runner = CliRunner()


def write_chart(path, rgb):
    cv2.imwrite(str(path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
    return path


def test_bars_command(tmp_path, zigzag_chart):
    path = write_chart(tmp_path / "chart.png", zigzag_chart)
    result = runner.invoke(app, ["bars", str(path)])
    assert result.exit_code == 0
    bars = json.loads(result.stdout)
    assert len(bars) == 12
    assert bars[0]["index"] == 0


def test_decide_command(tmp_path, zigzag_chart, monkeypatch):
    monkeypatch.delenv("CHART_DECISION_REMOTE_URL", raising=False)
    path = write_chart(tmp_path / "chart.png", zigzag_chart)
    result = runner.invoke(app, ["decide", str(path), "--timeframe", "5m"])
    assert result.exit_code == 0
    out = json.loads(result.stdout)
    assert out["source"] == "fallback-local"
    assert out["timeframe"] == "5m"
    assert out["action"] in ("buy", "sell", "wait")


def test_decide_missing_file(tmp_path):
    result = runner.invoke(app, ["decide", str(tmp_path / "missing.png")])
    assert result.exit_code == 1


def test_watch_requires_directory(tmp_path):
    result = runner.invoke(app, ["watch", str(tmp_path / "nowhere")])
    assert result.exit_code == 1


def test_newest_image(tmp_path, zigzag_chart):
    assert newest_image(tmp_path) is None
    older = write_chart(tmp_path / "a.png", zigzag_chart)
    newer = write_chart(tmp_path / "b.png", zigzag_chart)
    (tmp_path / "notes.txt").write_text("x")
    os.utime(older, (1, 1))
    assert newest_image(tmp_path) == newer


def test_bars_from_stdin(zigzag_chart):
    ok, png = cv2.imencode(".png", cv2.cvtColor(zigzag_chart, cv2.COLOR_RGB2BGR))
    assert ok
    result = runner.invoke(app, ["bars", "-"], input=png.tobytes())
    assert result.exit_code == 0
    assert len(json.loads(result.stdout)) == 12


def test_undecodable_stdin(monkeypatch):
    monkeypatch.delenv("CHART_DECISION_REMOTE_URL", raising=False)
    result = runner.invoke(app, ["decide", "-"], input=b"not an image")
    assert result.exit_code == 1
