import logging
from enum import Enum
from typing import Optional

from .assembly import StoreSnapshot

logger = logging.getLogger(__name__)


class CompletionState(Enum):
    COLLECTING = 'collecting'
    FINALIZING = 'finalizing'
    DONE = 'done'


class CompletionDetector:
    """Infers the end of a transfer from silence on the channel.

    There is no acknowledgment and the total may never be seen, so the only
    signal is "nothing new for longer than idle_timeout".
    FINALIZING is held while the file is being rebuilt so idle checks in the
    meantime do not fire again.
    """

    def __init__(self, idle_timeout: float):
        if idle_timeout <= 0:
            raise ValueError("idle timeout must be positive")
        self.idle_timeout = idle_timeout
        self.state = CompletionState.COLLECTING
        self.last_error: Optional[Exception] = None

    def poll(self, snapshot: StoreSnapshot) -> bool:
        if self.state is not CompletionState.COLLECTING:
            return False
        if snapshot.count == 0 or snapshot.idle_seconds <= self.idle_timeout:
            return False
        logger.info("No new chunks for %.1fs (%d collected), finalizing session %s",
                    snapshot.idle_seconds, snapshot.count, snapshot.session_id)
        self.state = CompletionState.FINALIZING
        return True

    def finalize_now(self):
        """Skip the idle wait, e.g. when the receiver is shutting down."""
        self._require(CompletionState.COLLECTING, 'finalize')
        self.state = CompletionState.FINALIZING

    def _require(self, state: CompletionState, action: str):
        if self.state is not state:
            raise RuntimeError(f"cannot {action} while {self.state.value}")

    def succeeded(self):
        self._require(CompletionState.FINALIZING, 'finish')
        self.state = CompletionState.DONE
        self.last_error = None

    def failed(self, error: Exception):
        self._require(CompletionState.FINALIZING, 'fail')
        logger.warning("Finalize failed, collecting again: %s", error)
        self.state = CompletionState.COLLECTING
        self.last_error = error

    def reset(self):
        self.state = CompletionState.COLLECTING
        self.last_error = None
