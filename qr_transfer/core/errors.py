from typing import List, Optional


class TransferError(Exception):
    """Base class for everything the transfer protocol raises."""


class FrameError(TransferError):
    """A decoded string could not be turned into a chunk."""


class MalformedFrame(FrameError):
    pass


class ChecksumMismatch(FrameError):
    def __init__(self, seq: int, expected: int, actual: int):
        super().__init__(f"checksum mismatch on chunk {seq}: header {expected:08x}, payload {actual:08x}")
        self.seq = seq
        self.expected = expected
        self.actual = actual


class UnknownSessionError(TransferError):
    def __init__(self, session_id: str, current: Optional[str] = None, reason: str = 'unknown'):
        super().__init__(f"ignoring chunk from {reason} session {session_id} (current: {current})")
        self.session_id = session_id
        self.current = current
        self.reason = reason


class ReconstructionError(TransferError):
    pass


class ReconstructionGap(ReconstructionError):
    def __init__(self, missing: List[int]):
        preview = ', '.join(str(i) for i in missing[:10])
        if len(missing) > 10:
            preview += ', ...'
        super().__init__(f"{len(missing)} chunk(s) missing: {preview}")
        self.missing = missing


class PersistFailure(TransferError):
    def __init__(self, path: str, cause: Exception):
        super().__init__(f"could not write {path}: {cause}")
        self.path = path
        self.cause = cause
