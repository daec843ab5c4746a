"""Capture and decode capabilities used by the receiver's sampler."""
import glob
import logging
import os
from typing import List, Optional, Set

import cv2
import numpy as np
from PIL import Image, ImageGrab
from pyzbar.pyzbar import ZBarSymbol
from pyzbar.pyzbar import decode as decode_qr

logger = logging.getLogger(__name__)

IMAGE_PATTERNS = ('*.png', '*.jpg', '*.jpeg', '*.bmp')


def to_grayscale(img: Image.Image) -> np.ndarray:
    """Luma conversion (0.299 R + 0.587 G + 0.114 B) as a uint8 array."""
    rgb = np.asarray(img.convert('RGB'), dtype=np.uint32)
    gray = (299 * rgb[:, :, 0] + 587 * rgb[:, :, 1] + 114 * rgb[:, :, 2]) // 1000
    return gray.astype(np.uint8)


def decode_qr_strings(img: Image.Image) -> Set[str]:
    """Return the text of every QR code visible in the image."""
    found = set()
    for symbol in decode_qr(to_grayscale(img), symbols=[ZBarSymbol.QRCODE]):
        try:
            found.add(symbol.data.decode('utf-8'))
        except UnicodeDecodeError:
            logger.debug("Skipping QR code with non UTF-8 content (%d bytes)", len(symbol.data))
    return found


class ScreenCapture:
    """Grabs the whole (primary) screen."""

    def __init__(self, all_screens: bool = False):
        self.all_screens = all_screens

    def __call__(self) -> Image.Image:
        return ImageGrab.grab(all_screens=self.all_screens)

    def close(self):
        pass


class CameraCapture:
    def __init__(self, device: int = 0):
        self.device = device
        self.cap = cv2.VideoCapture(device)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera {device}")

    def __call__(self) -> Optional[Image.Image]:
        ret, frame = self.cap.read()
        if not ret:
            return None
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def close(self):
        self.cap.release()


class FolderCapture:
    """Replays previously recorded frames, one image per call."""

    def __init__(self, directory: str):
        if not os.path.isdir(directory):
            raise FileNotFoundError(f"Frames directory not found: {directory}")
        paths: List[str] = []
        for pattern in IMAGE_PATTERNS:
            paths.extend(glob.glob(os.path.join(directory, pattern)))
        self.paths = sorted(paths)
        self.position = 0

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.paths)

    def __call__(self) -> Optional[Image.Image]:
        if self.exhausted:
            return None
        path = self.paths[self.position]
        self.position += 1
        with Image.open(path) as img:
            img.load()
            return img.copy()

    def close(self):
        pass
