import logging
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)


def check_timing(display_interval: float, capture_interval: float, decode_latency: float = 0.0) -> bool:
    """Return True when every frame stays up long enough for one full capture."""
    needed = capture_interval + decode_latency
    if display_interval < needed:
        logger.warning("Display interval %.3fs is shorter than capture + decode (%.3fs); "
                       "frames may be skipped", display_interval, needed)
        return False
    return True


class CarouselScheduler:
    """Decides which chunk is on screen, cycling through all of them forever.

    The visible index is derived from the clock rather than from a ticking
    counter, so any number of renderers (GUI timer, HTTP viewers) agree on it.
    """

    def __init__(self, count: int, interval: float, clock: Callable[[], float] = time.monotonic,
                 playing: bool = True):
        if count < 1:
            raise ValueError("carousel needs at least one frame")
        if interval <= 0:
            raise ValueError("display interval must be positive")
        self.count = count
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._anchor_index = 0
        self._anchor_time = clock()
        self._playing = playing

    def _index_at(self, now: float) -> int:
        if not self._playing:
            return self._anchor_index
        steps = int((now - self._anchor_time) // self.interval)
        return (self._anchor_index + max(steps, 0)) % self.count

    def _reanchor(self, index: int):
        self._anchor_index = index % self.count
        self._anchor_time = self._clock()

    def current_index(self) -> int:
        with self._lock:
            return self._index_at(self._clock())

    def next_index(self) -> int:
        return (self.current_index() + 1) % self.count

    def time_to_next(self) -> float:
        """Seconds until the carousel advances (the full interval while paused)."""
        with self._lock:
            if not self._playing:
                return self.interval
            elapsed = self._clock() - self._anchor_time
            return self.interval - (elapsed % self.interval)

    @property
    def playing(self) -> bool:
        return self._playing

    def play(self):
        with self._lock:
            if not self._playing:
                self._anchor_time = self._clock()
                self._playing = True

    def pause(self):
        with self._lock:
            if self._playing:
                self._anchor_index = self._index_at(self._clock())
                self._playing = False

    def toggle(self) -> bool:
        if self._playing:
            self.pause()
        else:
            self.play()
        return self._playing

    def next(self) -> int:
        with self._lock:
            self._reanchor(self._index_at(self._clock()) + 1)
            return self._anchor_index

    def previous(self) -> int:
        with self._lock:
            self._reanchor(self._index_at(self._clock()) - 1)
            return self._anchor_index

    def seek(self, index: int) -> int:
        if not 0 <= index < self.count:
            raise IndexError(f"frame {index} out of range 0..{self.count - 1}")
        with self._lock:
            self._reanchor(index)
            return self._anchor_index

    def first(self) -> int:
        return self.seek(0)

    def last(self) -> int:
        return self.seek(self.count - 1)

    def set_interval(self, interval: float):
        if interval <= 0:
            raise ValueError("display interval must be positive")
        with self._lock:
            self._reanchor(self._index_at(self._clock()))
            self.interval = interval

    def state(self) -> Dict:
        with self._lock:
            return {
                'index': self._index_at(self._clock()),
                'total': self.count,
                'playing': self._playing,
                'interval_ms': int(round(self.interval * 1000)),
            }
