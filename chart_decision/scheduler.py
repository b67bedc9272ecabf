# chart_decision/scheduler.py
import logging
import queue
import threading
import time
from collections import deque
from typing import Any, Callable

from .config import Settings
from .service import AnalysisRecord, AnalysisService
from .types import OHLCBar

LOGGER = logging.getLogger(__name__)

TRAILING_BARS = 20
RATE_WINDOW_SECONDS = 60.0


class CaptureScheduler:
    """Periodically capture a chart image, analyze it and publish the record.

    Parameters
    ----------
    capture : callable
        Returns the next image (path, array or ``RasterImage``) or ``None``
        when nothing is available.
    service : AnalysisService, optional
        Analysis orchestrator; built from ``settings`` when omitted.
    settings : Settings, optional
        Interval and rate bound.
    results : queue.Queue, optional
        Where records are delivered; a new unbounded queue by default.
    """

    def __init__(
        self,
        capture: Callable[[], Any],
        service: AnalysisService | None = None,
        settings: Settings | None = None,
        results: queue.Queue | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.service = service or AnalysisService(self.settings)
        self.results: queue.Queue = results if results is not None else queue.Queue()
        self._capture = capture
        self._interval = self.settings.capture_interval
        self._max_per_minute = self.settings.max_captures_per_minute
        self._clock = clock
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._recent: deque[float] = deque()
        self._trailing: list[OHLCBar] = []

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def trailing_bars(self) -> list[OHLCBar]:
        with self._lock:
            return list(self._trailing)

    @property
    def interval(self) -> float:
        """Seconds between cycles, never shorter than the rate bound allows."""
        with self._lock:
            floor = RATE_WINDOW_SECONDS / self._max_per_minute if self._max_per_minute > 0 else 0.0
            return max(self._interval, floor)

    def update(
        self,
        interval: float | None = None,
        max_per_minute: int | None = None,
        capture: Callable[[], Any] | None = None,
    ) -> None:
        with self._lock:
            if interval is not None:
                self._interval = max(0.0, float(interval))
            if max_per_minute is not None:
                self._max_per_minute = int(max_per_minute)
            if capture is not None:
                self._capture = capture

    def _allow(self) -> bool:
        now = self._clock()
        with self._lock:
            while self._recent and now - self._recent[0] >= RATE_WINDOW_SECONDS:
                self._recent.popleft()
            if self._max_per_minute > 0 and len(self._recent) >= self._max_per_minute:
                return False
            self._recent.append(now)
            return True

    def run_once(self) -> AnalysisRecord | None:
        """One capture/analyze cycle; ``None`` when skipped."""
        if not self._allow():
            LOGGER.debug("Capture rate limit reached, skipping cycle")
            return None
        with self._lock:
            capture = self._capture
            prior = list(self._trailing)
        image = capture()
        if image is None:
            return None

        record = self.service.analyze(image, prior_bars=prior or None)
        if record.bars:
            with self._lock:
                self._trailing = list(record.bars[-TRAILING_BARS:])
        self.results.put(record)
        return record

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                LOGGER.exception("Capture cycle failed")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="capture-scheduler", daemon=True)
        self._thread.start()
        LOGGER.info("Capture scheduler started (every %.1fs)", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        LOGGER.info("Capture scheduler stopped")
