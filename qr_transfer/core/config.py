"""Default configuration values and the sender/receiver settings objects."""
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 1500  # raw bytes per chunk, ~2000 base64 chars per QR code
DEFAULT_SLIDE_INTERVAL_MS = 1000
DEFAULT_CAPTURE_INTERVAL_MS = 50
DEFAULT_IDLE_TIMEOUT = 3.0  # seconds without a new chunk before reassembly
DEFAULT_HTTP_PORT = 9090
DEFAULT_QR_SCALE = 4
DEFAULT_QR_BORDER = 4
QR_OUTPUT_DIR = 'qr_output'
MANIFEST_NAME = 'manifest.json'
OUTPUT_PREFIX = 'received_file_'


@dataclass
class SenderConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    interval_ms: int = DEFAULT_SLIDE_INTERVAL_MS
    out_dir: str = QR_OUTPUT_DIR
    port: int = DEFAULT_HTTP_PORT
    qr_scale: int = DEFAULT_QR_SCALE
    qr_border: int = DEFAULT_QR_BORDER

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000.0

    def validate(self) -> 'SenderConfig':
        if self.chunk_size < 3:
            raise ValueError(f"chunk size must be at least 3 bytes, got {self.chunk_size}")
        if self.interval_ms <= 0:
            raise ValueError("slide interval must be positive")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"invalid port {self.port}")
        return self


@dataclass
class ReceiverConfig:
    capture_interval_ms: int = DEFAULT_CAPTURE_INTERVAL_MS
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    out_dir: str = '.'
    # Seconds between write attempts after a failed persist.
    persist_retry: float = DEFAULT_IDLE_TIMEOUT
    heartbeat_ticks: int = 100

    @property
    def capture_interval(self) -> float:
        return self.capture_interval_ms / 1000.0

    def validate(self) -> 'ReceiverConfig':
        if self.capture_interval_ms <= 0:
            raise ValueError("capture interval must be positive")
        if self.idle_timeout <= 0:
            raise ValueError("idle timeout must be positive")
        if self.persist_retry < 0:
            raise ValueError("persist retry delay cannot be negative")
        return self
