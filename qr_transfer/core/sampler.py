import logging
import threading
import time
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class CaptureSampler:
    """Captures and decodes the channel once per interval on a single worker.

    Ticks never overlap: a tick that runs long pushes the next one back and
    the slots it overran are dropped rather than replayed.
    """

    def __init__(self, capture: Callable[[], Any], decode: Callable[[Any], Iterable[str]],
                 on_decoded: Callable[[Iterable[str]], Any], interval: float,
                 on_tick: Optional[Callable[[], Any]] = None,
                 clock: Callable[[], float] = time.monotonic, heartbeat_ticks: int = 100):
        if interval <= 0:
            raise ValueError("sampling interval must be positive")
        self.capture = capture
        self.decode = decode
        self.on_decoded = on_decoded
        self.on_tick = on_tick
        self.interval = interval
        self.heartbeat_ticks = heartbeat_ticks
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.skipped = 0

    def _read_channel(self) -> set:
        try:
            image = self.capture()
            if image is None:
                return set()
            return set(self.decode(image))
        except Exception as e:
            # Capture hiccups are channel noise; the next tick tries again.
            logger.warning("Capture/decode failed: %s", e)
            return set()

    def tick(self) -> int:
        self.ticks += 1
        if self.heartbeat_ticks and self.ticks % self.heartbeat_ticks == 0:
            logger.info("Sampler running: %d captures so far", self.ticks)
        decoded = self._read_channel()
        self.on_decoded(decoded)
        if self.on_tick is not None:
            self.on_tick()
        return len(decoded)

    def run(self, stop_event: Optional[threading.Event] = None):
        stop = stop_event or self._stop
        next_at = self._clock()
        while not stop.is_set():
            self.tick()
            next_at += self.interval
            now = self._clock()
            if now > next_at:
                missed = int((now - next_at) // self.interval) + 1
                self.skipped += missed
                next_at += missed * self.interval
            stop.wait(max(0.0, next_at - now))

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("sampler already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name='capture-sampler', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
