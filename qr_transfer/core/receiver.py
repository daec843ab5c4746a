import logging
import time
from typing import Callable, Dict, Iterable, Optional, Set

from .assembly import AssemblyStore, ObserveResult
from .completion import CompletionDetector, CompletionState
from .config import ReceiverConfig
from .errors import (ChecksumMismatch, MalformedFrame, PersistFailure, ReconstructionError,
                     UnknownSessionError)
from .framing import Chunk, parse_frame
from .reconstruct import Reconstructor

logger = logging.getLogger(__name__)


class Receiver:
    """Owns the receiving side of one or more sequential transfers.

    The store for a session is created on its first valid chunk and dropped
    once its file is written. Retired session ids (finished or superseded)
    are remembered so a sender that keeps looping does not produce the same
    file twice.
    """

    def __init__(self, config: Optional[ReceiverConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 wall_clock: Callable[[], float] = time.time,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 on_complete: Optional[Callable[[str], None]] = None):
        self.config = (config or ReceiverConfig()).validate()
        self._clock = clock
        self._wall_clock = wall_clock
        self.on_error = on_error
        self.on_complete = on_complete
        self.reconstructor = Reconstructor(self.config.out_dir)
        self.detector = CompletionDetector(self.config.idle_timeout)
        self.store: Optional[AssemblyStore] = None
        self.retired: Set[str] = set()
        self.completed_paths = []
        self.last_error: Optional[Exception] = None
        self._pending: Optional[bytes] = None
        self._pending_session: Optional[str] = None
        self._next_write_at = 0.0
        # Chunk count at the last gap failure; no retry until something new arrives.
        self._gap_count: Optional[int] = None
        self.stats: Dict[str, int] = dict.fromkeys(
            ('decoded', 'stored', 'duplicates', 'malformed', 'checksum_errors', 'foreign'), 0)

    @property
    def state(self) -> CompletionState:
        return self.detector.state

    def _open(self, chunk: Chunk) -> AssemblyStore:
        logger.info("New session %s (%s chunks announced)", chunk.session_id,
                    chunk.total if chunk.total is not None else 'unknown')
        self.store = AssemblyStore(chunk.session_id, self._clock)
        self.detector.reset()
        self._gap_count = None
        return self.store

    def _store_for(self, chunk: Chunk) -> AssemblyStore:
        if chunk.session_id in self.retired:
            raise UnknownSessionError(chunk.session_id, self.session_id, 'retired')
        if self.store is None:
            return self._open(chunk)
        if chunk.session_id == self.store.session_id:
            return self.store
        # Another sender only takes over once the current one has gone quiet,
        # and only after the quiet session has had its chance to finish.
        if self.detector.state is CompletionState.COLLECTING and \
                self.store.idle_seconds() > self.config.idle_timeout:
            self.poll()
            if self.store is None:
                return self._open(chunk)
            if self.detector.state is CompletionState.COLLECTING:
                logger.warning("Session %s superseded by %s, dropping %d chunks",
                               self.store.session_id, chunk.session_id, len(self.store))
                self.retired.add(self.store.session_id)
                self.store.clear()
                return self._open(chunk)
        raise UnknownSessionError(chunk.session_id, self.store.session_id, 'unknown')

    @property
    def session_id(self) -> Optional[str]:
        return self.store.session_id if self.store is not None else None

    def observe_text(self, text: str) -> Optional[ObserveResult]:
        """Parse and store one decoded string; None when it was discarded."""
        self.stats['decoded'] += 1
        try:
            chunk = parse_frame(text)
            result = self._store_for(chunk).observe(chunk)
        except ChecksumMismatch as e:
            self.stats['checksum_errors'] += 1
            logger.warning("Discarded chunk: %s", e)
            return None
        except MalformedFrame as e:
            self.stats['malformed'] += 1
            logger.debug("Discarded non-frame QR content: %s", e)
            return None
        except UnknownSessionError as e:
            self.stats['foreign'] += 1
            logger.debug(str(e))
            return None

        if result is ObserveResult.STORED:
            self.stats['stored'] += 1
            total = chunk.total if chunk.total is not None else '?'
            logger.info("[received] chunk #%d of %s | %d chars | %d collected",
                        chunk.seq, total, len(chunk.payload), len(self.store))
        elif result is ObserveResult.DUPLICATE:
            self.stats['duplicates'] += 1
        elif result is ObserveResult.BAD_CHECKSUM:
            self.stats['checksum_errors'] += 1
        return result

    def handle_decoded(self, strings: Iterable[str]) -> int:
        """Feed one sample's decoded strings; returns how many new chunks were stored."""
        return sum(1 for s in strings if self.observe_text(s) is ObserveResult.STORED)

    def _report(self, error: Exception):
        self.last_error = error
        if self.on_error is not None:
            self.on_error(error)

    def _write(self) -> str:
        path = self.reconstructor.persist(self._pending, self._wall_clock())
        self.retired.add(self._pending_session)
        self._pending = None
        self._pending_session = None
        self.store = None
        self.detector.succeeded()
        self.completed_paths.append(path)
        if self.on_complete is not None:
            self.on_complete(path)
        return path

    def _try_write(self) -> Optional[str]:
        try:
            return self._write()
        except PersistFailure as e:
            logger.error("%s; chunks kept, retrying write in %.1fs", e, self.config.persist_retry)
            self._next_write_at = self._clock() + self.config.persist_retry
            self._report(e)
            return None

    def poll(self) -> Optional[str]:
        """Run the completion check; returns the written path when a file is finished."""
        if self._pending is not None:
            if self._clock() < self._next_write_at:
                return None
            return self._try_write()
        if self.store is None:
            return None
        snapshot = self.store.snapshot()
        if snapshot.count == self._gap_count or not self.detector.poll(snapshot):
            return None
        try:
            self._pending = self.reconstructor.assemble(snapshot)
        except ReconstructionError as e:
            self._gap_count = snapshot.count
            self.detector.failed(e)
            self._report(e)
            return None
        self._pending_session = snapshot.session_id
        return self._try_write()

    def flush(self) -> Optional[str]:
        """Rebuild whatever is stored right now; used on shutdown.

        Errors are raised to the caller instead of being retried.
        """
        if self._pending is not None:
            return self._write()
        if self.store is None or len(self.store) == 0:
            return None
        snapshot = self.store.snapshot()
        if self.detector.state is CompletionState.COLLECTING:
            self.detector.finalize_now()
        try:
            self._pending = self.reconstructor.assemble(snapshot)
        except ReconstructionError as e:
            self.detector.failed(e)
            raise
        self._pending_session = snapshot.session_id
        return self._write()

    def status(self) -> Dict:
        snapshot = self.store.snapshot() if self.store is not None else None
        return {
            'state': self.detector.state.value,
            'session_id': self.session_id,
            'received': snapshot.count if snapshot else 0,
            'total': snapshot.total_hint if snapshot else None,
            'missing': snapshot.missing() if snapshot and snapshot.count else [],
            'idle_seconds': snapshot.idle_seconds if snapshot else None,
            'files': list(self.completed_paths),
            'last_error': str(self.last_error) if self.last_error else None,
            **self.stats,
        }
