import base64
import hashlib
import re
import time
import zlib
from dataclasses import dataclass
from typing import List, Optional

from .config import DEFAULT_CHUNK_SIZE
from .errors import ChecksumMismatch, MalformedFrame

MAGIC = 'QRT1'
DELIMITER = '|'
SESSION_ID_LEN = 12

_SESSION_RE = re.compile(r'^[0-9a-f]{1,32}$')
_CRC_RE = re.compile(r'^[0-9a-f]{8}$')
_B64_RE = re.compile(r'^[A-Za-z0-9+/]*={0,2}$')
_UINT_RE = re.compile(r'^[0-9]+$')


def checksum(payload: str) -> int:
    return zlib.crc32(payload.encode('ascii')) & 0xFFFFFFFF


@dataclass(frozen=True)
class Chunk:
    session_id: str
    seq: int
    payload: str
    checksum: int
    total: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        return checksum(self.payload) == self.checksum


@dataclass
class FramedFile:
    session_id: str
    created: float
    size: int
    sha256: str
    chunk_size: int
    chunks: List[Chunk]

    @property
    def total(self) -> int:
        return len(self.chunks)


def make_session_id(data: bytes, created: float) -> str:
    """Mix the content digest with the creation time so re-sends get a new session."""
    h = hashlib.sha256(data)
    h.update(repr(created).encode())
    return h.hexdigest()[:SESSION_ID_LEN]


def aligned_slice_len(chunk_size: int) -> int:
    """Base64 characters per chunk for a raw byte budget.

    The budget is rounded down to whole 3-byte groups so every slice decodes on its own.
    """
    if chunk_size < 3:
        raise ValueError(f"chunk size must be at least 3 bytes, got {chunk_size}")
    return (chunk_size // 3) * 4


def frame_bytes(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE,
                session_id: Optional[str] = None, created: Optional[float] = None) -> FramedFile:
    """Split data into checksummed chunks of base64 text.

    An empty input still yields one chunk (with an empty payload) so the
    receiver has something to see.
    """
    step = aligned_slice_len(chunk_size)
    if created is None:
        created = time.time()
    if session_id is None:
        session_id = make_session_id(data, created)
    elif not _SESSION_RE.match(session_id):
        raise ValueError(f"session id must be 1-32 lowercase hex chars, got {session_id!r}")

    encoded = base64.b64encode(data).decode('ascii')
    slices = [encoded[i:i + step] for i in range(0, len(encoded), step)] or ['']
    total = len(slices)
    chunks = [Chunk(session_id, seq, payload, checksum(payload), total)
              for seq, payload in enumerate(slices)]
    return FramedFile(
        session_id=session_id,
        created=created,
        size=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
        chunk_size=chunk_size,
        chunks=chunks,
    )


def frame_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> FramedFile:
    with open(path, 'rb') as f:
        data = f.read()
    return frame_bytes(data, chunk_size)


def encode_frame(chunk: Chunk) -> str:
    """Serialize a chunk into the text carried by one QR code."""
    total = '' if chunk.total is None else str(chunk.total)
    return DELIMITER.join([MAGIC, chunk.session_id, total, str(chunk.seq),
                           f"{chunk.checksum:08x}", chunk.payload])


def _parse_int(field: str, name: str) -> int:
    if not _UINT_RE.match(field):
        raise MalformedFrame(f"{name} is not a non-negative integer: {field[:16]!r}")
    return int(field)


def parse_frame(text: str) -> Chunk:
    """Parse one decoded QR string back into a chunk.

    Raises MalformedFrame for anything that is not our framing and
    ChecksumMismatch when the payload was damaged.
    """
    parts = text.strip().split(DELIMITER)
    if len(parts) != 6:
        raise MalformedFrame(f"expected 6 fields, got {len(parts)}")
    magic, session_id, total_field, seq_field, crc_field, payload = parts
    if magic != MAGIC:
        raise MalformedFrame(f"bad magic {magic[:8]!r}")
    if not _SESSION_RE.match(session_id):
        raise MalformedFrame(f"bad session id {session_id[:40]!r}")

    seq = _parse_int(seq_field, 'seq')
    total = None
    if total_field:
        total = _parse_int(total_field, 'total')
        if total == 0 or seq >= total:
            raise MalformedFrame(f"seq {seq} out of range for total {total}")

    if not _CRC_RE.match(crc_field):
        raise MalformedFrame(f"bad checksum field {crc_field[:16]!r}")
    if not _B64_RE.match(payload):
        raise MalformedFrame("payload is not base64 text")

    expected = int(crc_field, 16)
    actual = checksum(payload)
    if expected != actual:
        raise ChecksumMismatch(seq, expected, actual)
    return Chunk(session_id, seq, payload, expected, total)
