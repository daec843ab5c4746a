import argparse, logging, os, threading
from qr_transfer.core.carousel import check_timing
from qr_transfer.core.config import ReceiverConfig, DEFAULT_CAPTURE_INTERVAL_MS, DEFAULT_IDLE_TIMEOUT, DEFAULT_SLIDE_INTERVAL_MS
from qr_transfer.core.capture import ScreenCapture, CameraCapture, FolderCapture, decode_qr_strings
from qr_transfer.core.errors import TransferError
from qr_transfer.core.logger_config import setup_logger
from qr_transfer.core.receiver import Receiver
from qr_transfer.core.reconstruct import format_file_size
from qr_transfer.core.sampler import CaptureSampler


def make_capture(args):
    if args.source == 'camera':
        return CameraCapture(args.camera)
    if args.source == 'frames':
        if not args.frames:
            raise SystemExit('--frames DIR is required with --source frames')
        return FolderCapture(args.frames)
    return ScreenCapture()


def print_result(receiver: Receiver, path: str):
    print()
    print("File received!")
    print(f"  name:   {path}")
    print(f"  size:   {format_file_size(os.path.getsize(path))}")
    print(f"  chunks: {receiver.stats['stored']} stored, {receiver.stats['duplicates']} duplicates, "
          f"{receiver.stats['checksum_errors']} corrupted")


def main():
    ap = argparse.ArgumentParser(description="QR carousel receiver")
    ap.add_argument('--source', choices=['screen', 'camera', 'frames'], default='screen')
    ap.add_argument('--frames', help='Directory of recorded frames (with --source frames)')
    ap.add_argument('--camera', type=int, default=0, help='Camera device index')
    ap.add_argument('--out', default='.', help='Output directory for reconstructed files')
    ap.add_argument('--capture-ms', type=int, default=DEFAULT_CAPTURE_INTERVAL_MS, help='Sampling interval')
    ap.add_argument('--slide-ms', type=int, default=DEFAULT_SLIDE_INTERVAL_MS,
                    help="Sender's display time per frame, checked against --capture-ms")
    ap.add_argument('--idle-timeout', type=float, default=DEFAULT_IDLE_TIMEOUT,
                    help='Seconds without new chunks before the file is rebuilt')
    ap.add_argument('--keep-listening', action='store_true', help='Keep sampling for further transfers')
    ap.add_argument('--log-file', help='Also write logs to this file')
    ap.add_argument('--verbose', action='store_true')
    args = ap.parse_args()

    setup_logger('qr_transfer', args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    try:
        config = ReceiverConfig(capture_interval_ms=args.capture_ms, idle_timeout=args.idle_timeout,
                                out_dir=args.out, persist_retry=args.idle_timeout).validate()
    except ValueError as e:
        raise SystemExit(str(e))
    check_timing(args.slide_ms / 1000.0, config.capture_interval)

    stop = threading.Event()
    receiver = Receiver(config)

    def on_complete(path):
        print_result(receiver, path)
        if not args.keep_listening:
            stop.set()

    def on_error(error):
        print(f"[error] {error}")

    receiver.on_complete = on_complete
    receiver.on_error = on_error

    capture = make_capture(args)

    def on_tick():
        receiver.poll()
        if isinstance(capture, FolderCapture) and capture.exhausted:
            stop.set()

    sampler = CaptureSampler(capture, decode_qr_strings, receiver.handle_decoded, config.capture_interval,
                             on_tick=on_tick, heartbeat_ticks=config.heartbeat_ticks)
    print(f"Listening for QR codes ({args.source}), Ctrl-C to stop...")
    try:
        sampler.run(stop)
    except KeyboardInterrupt:
        print("Interrupted, rebuilding what was received...")
    finally:
        capture.close()

    try:
        path = receiver.flush()
    except TransferError as e:
        raise SystemExit(f"Reconstruction failed: {e}")
    if path is None and not receiver.completed_paths:
        raise SystemExit("No data received.")

if __name__ == '__main__':
    main()
