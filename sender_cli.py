import argparse, logging, os
from qr_transfer.core.carousel import check_timing
from qr_transfer.core.config import SenderConfig, DEFAULT_CAPTURE_INTERVAL_MS, DEFAULT_CHUNK_SIZE, DEFAULT_SLIDE_INTERVAL_MS, DEFAULT_HTTP_PORT, QR_OUTPUT_DIR
from qr_transfer.core.framing import frame_file, encode_frame
from qr_transfer.core.rendering import write_svg_frames, build_manifest, save_manifest
from qr_transfer.core.reconstruct import format_file_size
from qr_transfer.core.logger_config import setup_logger


def generate(config: SenderConfig, path: str):
    if not os.path.isfile(path):
        raise SystemExit(f'Not a file: {path}')
    framed = frame_file(path, config.chunk_size)
    print(f"File:       {path} ({format_file_size(framed.size)})")
    print(f"Session:    {framed.session_id}")
    print(f"Chunks:     {framed.total}")
    print(f"QR payload: up to {max(len(encode_frame(c)) for c in framed.chunks)} chars")
    if not check_timing(config.interval, DEFAULT_CAPTURE_INTERVAL_MS / 1000.0):
        print(f"Warning:    {config.interval_ms} ms per frame is shorter than the receiver's "
              f"{DEFAULT_CAPTURE_INTERVAL_MS} ms sampling interval; frames may be missed")
    print()
    print("Generating QR codes...")
    try:
        write_svg_frames(framed, config.out_dir, scale=config.qr_scale, border=config.qr_border)
    except ValueError as e:
        raise SystemExit(str(e))
    manifest = build_manifest(framed, os.path.basename(path), config.interval_ms)
    save_manifest(manifest, config.out_dir)
    print(f"Done: {framed.total} frames in {config.out_dir}/")
    print(f"Run `python sender_cli.py serve --dir {config.out_dir}` and open the page to start the carousel.")


def serve(config: SenderConfig):
    from qr_transfer.web.server import CarouselServer
    server = CarouselServer(config.out_dir, port=config.port)
    print(f"Serving {len(server.frames)} frames at http://localhost:{server.port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("Stopped.")
    finally:
        server.httpd.server_close()


def main():
    ap = argparse.ArgumentParser(description="QR carousel sender")
    ap.add_argument('--log-file', help='Also write logs to this file')
    ap.add_argument('--verbose', action='store_true')
    sub = ap.add_subparsers(dest='command', required=True)

    gen = sub.add_parser('generate', help='Turn a file into QR frames')
    gen.add_argument('input', help='File to send')
    gen.add_argument('--out', default=QR_OUTPUT_DIR, help='Output directory for frames')
    gen.add_argument('--chunk-size', type=int, default=DEFAULT_CHUNK_SIZE, help='Raw bytes per QR code')
    gen.add_argument('--interval-ms', type=int, default=DEFAULT_SLIDE_INTERVAL_MS, help='Display time per frame')

    srv = sub.add_parser('serve', help='Serve the carousel over HTTP')
    srv.add_argument('--dir', default=QR_OUTPUT_DIR, help='Directory written by `generate`')
    srv.add_argument('--port', type=int, default=DEFAULT_HTTP_PORT)

    args = ap.parse_args()
    setup_logger('qr_transfer', args.log_file, logging.DEBUG if args.verbose else logging.INFO)

    if args.command == 'generate':
        config = SenderConfig(chunk_size=args.chunk_size, interval_ms=args.interval_ms, out_dir=args.out)
        generate(config.validate(), args.input)
    else:
        serve(SenderConfig(out_dir=args.dir, port=args.port).validate())

if __name__ == '__main__':
    main()
