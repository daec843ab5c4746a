import base64
import binascii
import logging
import os
import time
from typing import Optional

from .assembly import StoreSnapshot
from .config import OUTPUT_PREFIX
from .errors import PersistFailure, ReconstructionError, ReconstructionGap

logger = logging.getLogger(__name__)


def format_file_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MB"
    if size >= 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size} bytes"


class Reconstructor:
    """Turns a finished store snapshot back into the original file."""

    def __init__(self, out_dir: str = '.', prefix: str = OUTPUT_PREFIX):
        self.out_dir = out_dir
        self.prefix = prefix

    def assemble(self, snapshot: StoreSnapshot) -> bytes:
        """Concatenate payloads in order and undo the base64 transport encoding.

        Any hole below the highest index seen (or below the sender's total,
        when one was received) is a ReconstructionGap; nothing partial is
        ever returned.
        """
        missing = snapshot.missing()
        if missing:
            raise ReconstructionGap(missing)
        encoded = ''.join(payload for _seq, payload in snapshot.payloads)
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ReconstructionError(f"base64 decode failed: {e}") from e
        logger.info("Reassembled %d chunks: %d base64 chars -> %s",
                    snapshot.count, len(encoded), format_file_size(len(data)))
        return data

    def output_path(self, when: Optional[float] = None) -> str:
        stamp = int(time.time() if when is None else when)
        base = os.path.join(self.out_dir, f"{self.prefix}{stamp}")
        path = base
        n = 1
        while os.path.exists(path):
            path = f"{base}_{n}"
            n += 1
        return path

    def persist(self, data: bytes, when: Optional[float] = None) -> str:
        path = self.output_path(when)
        try:
            os.makedirs(self.out_dir, exist_ok=True)
            with open(path, 'xb') as f:
                f.write(data)
        except OSError as e:
            raise PersistFailure(path, e) from e
        logger.info("Wrote %s (%s)", path, format_file_size(len(data)))
        return path

    def reconstruct(self, snapshot: StoreSnapshot, when: Optional[float] = None) -> str:
        return self.persist(self.assemble(snapshot), when)
