import io
import json
import logging
import os
import time
from typing import Dict, List

import segno
from PIL import Image

from .config import DEFAULT_QR_BORDER, DEFAULT_QR_SCALE, MANIFEST_NAME
from .framing import Chunk, FramedFile, encode_frame

logger = logging.getLogger(__name__)

QR_ERROR_LEVEL = 'm'


def frame_filename(seq: int) -> str:
    return f"qr_{seq + 1:03d}.svg"


def chunk_to_qr(chunk: Chunk) -> 'segno.QRCode':
    data = encode_frame(chunk)
    try:
        return segno.make(data, error=QR_ERROR_LEVEL, micro=False)
    except segno.DataOverflowError as e:
        raise ValueError(f"chunk {chunk.seq} ({len(data)} chars) does not fit in one QR code; "
                         f"use a smaller chunk size") from e


def chunk_to_image(chunk: Chunk, scale: int = 10, border: int = DEFAULT_QR_BORDER) -> Image.Image:
    """Render a chunk's QR code as a PIL image for on-screen display."""
    qr = chunk_to_qr(chunk)
    buff = io.BytesIO()
    qr.save(buff, kind='png', scale=scale, border=border)
    buff.seek(0)
    img = Image.open(buff)
    img.load()
    return img


def write_svg_frames(framed: FramedFile, out_dir: str, scale: int = DEFAULT_QR_SCALE,
                     border: int = DEFAULT_QR_BORDER) -> List[str]:
    os.makedirs(out_dir, exist_ok=True)
    # Frames from an earlier, longer file would otherwise keep cycling.
    for name in os.listdir(out_dir):
        if name.startswith('qr_') and name.endswith('.svg'):
            os.remove(os.path.join(out_dir, name))

    paths = []
    for chunk in framed.chunks:
        path = os.path.join(out_dir, frame_filename(chunk.seq))
        chunk_to_qr(chunk).save(path, kind='svg', scale=scale, border=border)
        logger.debug("[%3d/%d] wrote %s (%d chars)", chunk.seq + 1, framed.total,
                     os.path.basename(path), len(chunk.payload))
        paths.append(path)
    return paths


def build_manifest(framed: FramedFile, file_name: str, interval_ms: int) -> Dict:
    return {
        'version': 1,
        'session_id': framed.session_id,
        'created_utc': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(framed.created)),
        'file': {
            'name': file_name,
            'size': framed.size,
            'sha256': framed.sha256,
        },
        'chunk_size': framed.chunk_size,
        'total_chunks': framed.total,
        'interval_ms': interval_ms,
        'frames': [frame_filename(c.seq) for c in framed.chunks],
    }


def save_manifest(manifest: Dict, out_dir: str) -> str:
    path = os.path.join(out_dir, MANIFEST_NAME)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(manifest, f, indent=2)
    return path


def load_manifest(out_dir: str) -> Dict:
    with open(os.path.join(out_dir, MANIFEST_NAME), encoding='utf-8') as f:
        return json.load(f)
