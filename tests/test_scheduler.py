import queue

from chart_decision.config import Settings
from chart_decision.scheduler import TRAILING_BARS, CaptureScheduler
from chart_decision.service import SOURCE_LOCAL, AnalysisService


class RecordingService(AnalysisService):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.priors = []

    def analyze(self, image, prior_bars=None):
        self.priors.append(prior_bars)
        return super().analyze(image, prior_bars=prior_bars)


def test_run_once_publishes_record(zigzag_chart):
    scheduler = CaptureScheduler(lambda: zigzag_chart)
    record = scheduler.run_once()
    assert record.source == SOURCE_LOCAL
    assert scheduler.results.get_nowait() is record
    assert len(scheduler.trailing_bars) == 12


def test_nothing_captured():
    scheduler = CaptureScheduler(lambda: None)
    assert scheduler.run_once() is None
    assert scheduler.results.empty()


def test_trailing_bars_feed_next_cycle(zigzag_chart):
    service = RecordingService()
    scheduler = CaptureScheduler(lambda: zigzag_chart, service=service)
    scheduler.run_once()
    scheduler.run_once()
    assert service.priors[0] is None
    assert len(service.priors[1]) == 12
    assert len(scheduler.trailing_bars) <= TRAILING_BARS


def test_rate_limit(zigzag_chart):
    now = [0.0]
    settings = Settings(max_captures_per_minute=2)
    scheduler = CaptureScheduler(lambda: zigzag_chart, settings=settings, clock=lambda: now[0])
    assert scheduler.run_once() is not None
    assert scheduler.run_once() is not None
    assert scheduler.run_once() is None
    now[0] = 61.0
    assert scheduler.run_once() is not None


def test_interval_respects_rate_bound():
    scheduler = CaptureScheduler(lambda: None, settings=Settings(capture_interval=1, max_captures_per_minute=12))
    assert scheduler.interval == 5
    scheduler.update(interval=10)
    assert scheduler.interval == 10
    scheduler.update(max_per_minute=0)
    assert scheduler.interval == 10


def test_update_swaps_capture(zigzag_chart):
    scheduler = CaptureScheduler(lambda: None)
    scheduler.update(capture=lambda: zigzag_chart)
    assert scheduler.run_once() is not None


def test_start_and_stop(zigzag_chart):
    results = queue.Queue()
    settings = Settings(capture_interval=0.01, max_captures_per_minute=600)
    scheduler = CaptureScheduler(lambda: zigzag_chart, settings=settings, results=results)
    scheduler.start()
    try:
        assert scheduler.running
        record = results.get(timeout=5)
        assert record.decision.action in ("buy", "sell", "wait")
    finally:
        scheduler.stop(timeout=5)
    assert not scheduler.running


def test_failing_capture_keeps_loop_alive(zigzag_chart, caplog):
    calls = []

    def capture():
        calls.append(1)
        if len(calls) == 1:
            raise OSError("screen unavailable")
        return zigzag_chart

    settings = Settings(capture_interval=0.01, max_captures_per_minute=600)
    scheduler = CaptureScheduler(capture, settings=settings)
    scheduler.start()
    try:
        assert scheduler.results.get(timeout=5) is not None
    finally:
        scheduler.stop(timeout=5)
    assert "Capture cycle failed" in caplog.text
