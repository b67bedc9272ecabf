# cli.py
import json
import logging
import sys
import time
from dataclasses import asdict, replace
from pathlib import Path

import typer

from chart_decision.config import load_settings
from chart_decision.pipeline import analyze
from chart_decision.scheduler import CaptureScheduler
from chart_decision.service import AnalysisService

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".webp"}

app = typer.Typer(help="Chart screenshot -> buy/sell/wait decision.")


def _setup(verbose: bool, timeframe: str | None, remote_url: str | None):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()
    if timeframe:
        settings = replace(settings, timeframe=timeframe)
    if remote_url:
        settings = replace(settings, remote_url=remote_url)
    return settings


def _source(path: str):
    return sys.stdin.buffer.read() if path == "-" else path


def newest_image(directory: Path) -> Path | None:
    images = [p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES]
    return max(images, key=lambda p: p.stat().st_mtime) if images else None


@app.command()
def decide(
    path: str,
    timeframe: str = typer.Option(None, help="Chart timeframe, e.g. 1m, 5m, 1h."),
    remote_url: str = typer.Option(None, help="Remote analyzer endpoint."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Analyze one screenshot (or PNG bytes on stdin with `-`) and print the decision as JSON."""
    settings = _setup(verbose, timeframe, remote_url)
    try:
        record = AnalysisService(settings).analyze(_source(path))
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)
    print(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))


@app.command()
def bars(
    path: str,
    timeframe: str = typer.Option(None, help="Chart timeframe, e.g. 1m, 5m, 1h."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Print the OHLC bars reconstructed from a screenshot."""
    settings = _setup(verbose, timeframe, None)
    try:
        result = analyze(_source(path), settings=settings)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)
    print(json.dumps([asdict(b) for b in result.bars], indent=2))


@app.command()
def watch(
    directory: str,
    interval: float = typer.Option(None, help="Seconds between captures."),
    timeframe: str = typer.Option(None, help="Chart timeframe, e.g. 1m, 5m, 1h."),
    remote_url: str = typer.Option(None, help="Remote analyzer endpoint."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Analyze the newest image in a directory on every cycle until Ctrl-C."""
    settings = _setup(verbose, timeframe, remote_url)
    folder = Path(directory)
    if not folder.is_dir():
        typer.echo(f"error: not a directory: {folder}", err=True)
        raise typer.Exit(code=1)

    scheduler = CaptureScheduler(lambda: newest_image(folder), settings=settings)
    if interval is not None:
        scheduler.update(interval=interval)
    scheduler.start()
    try:
        while True:
            record = scheduler.results.get()
            d = record.decision
            print(f"{time.strftime('%H:%M:%S')} [{record.source}] {d.action} "
                  f"accepted={d.accepted} confidence={d.confidence:.2f} risk={d.risk_tier}")
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop(timeout=5)


if __name__ == "__main__":
    app()
