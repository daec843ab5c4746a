import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .framing import Chunk


class ObserveResult(Enum):
    STORED = 'stored'
    DUPLICATE = 'duplicate'
    BAD_CHECKSUM = 'bad_checksum'
    FOREIGN_SESSION = 'foreign_session'


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable view of a store, safe to hand to another thread."""
    session_id: str
    count: int
    max_seq: Optional[int]
    total_hint: Optional[int]
    idle_seconds: float
    payloads: Tuple[Tuple[int, str], ...]

    def missing(self) -> List[int]:
        if self.max_seq is None:
            return [0] if self.total_hint is None else list(range(self.total_hint))
        upper = self.max_seq + 1
        if self.total_hint is not None:
            upper = max(upper, self.total_hint)
        have = {seq for seq, _ in self.payloads}
        return [i for i in range(upper) if i not in have]

    @property
    def complete(self) -> bool:
        return self.total_hint is not None and self.count >= self.total_hint and not self.missing()


class AssemblyStore:
    """Deduplicating chunk store for one session.

    Each sequence index is stored at most once; later copies are dropped,
    never overwritten. Only new insertions move the activity clock.
    """

    def __init__(self, session_id: str, clock: Callable[[], float] = time.monotonic):
        self.session_id = session_id
        self._clock = clock
        self._lock = threading.Lock()
        self._chunks: Dict[int, str] = {}
        self._total_hint: Optional[int] = None
        self.created = clock()
        self._last_activity = self.created

    def observe(self, chunk: Chunk) -> ObserveResult:
        if chunk.session_id != self.session_id:
            return ObserveResult.FOREIGN_SESSION
        if not chunk.is_valid:
            return ObserveResult.BAD_CHECKSUM
        with self._lock:
            if chunk.seq in self._chunks:
                return ObserveResult.DUPLICATE
            self._chunks[chunk.seq] = chunk.payload
            if chunk.total is not None and self._total_hint is None:
                self._total_hint = chunk.total
            self._last_activity = self._clock()
            return ObserveResult.STORED

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)

    def __contains__(self, seq: int) -> bool:
        with self._lock:
            return seq in self._chunks

    def idle_seconds(self) -> float:
        with self._lock:
            return self._clock() - self._last_activity

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            payloads = tuple(sorted(self._chunks.items()))
            return StoreSnapshot(
                session_id=self.session_id,
                count=len(payloads),
                max_seq=payloads[-1][0] if payloads else None,
                total_hint=self._total_hint,
                idle_seconds=self._clock() - self._last_activity,
                payloads=payloads,
            )

    def clear(self):
        with self._lock:
            self._chunks.clear()
            self._total_hint = None
            self._last_activity = self._clock()
