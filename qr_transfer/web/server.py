import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import List, Optional, Tuple

from qr_transfer.core.carousel import CarouselScheduler
from qr_transfer.core.config import DEFAULT_HTTP_PORT, DEFAULT_SLIDE_INTERVAL_MS, MANIFEST_NAME, QR_OUTPUT_DIR
from qr_transfer.core.rendering import load_manifest

logger = logging.getLogger(__name__)

INDEX_HTML = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'index.html')
FRAME_ROUTE = '/' + QR_OUTPUT_DIR + '/'


def list_frames(qr_dir: str) -> List[str]:
    if not os.path.isdir(qr_dir):
        return []
    return sorted(n for n in os.listdir(qr_dir) if n.startswith('qr_') and n.endswith('.svg'))


def load_qr_dir(qr_dir: str) -> Tuple[List[str], dict]:
    """Frames and manifest for a generated carousel directory."""
    manifest = {}
    if os.path.exists(os.path.join(qr_dir, MANIFEST_NAME)):
        manifest = load_manifest(qr_dir)
    frames = manifest.get('frames') or list_frames(qr_dir)
    return frames, manifest


class CarouselServer:
    """Serves the generated QR frames and the viewer's play/pause/advance API.

    The chunk list is read-only here; the only shared mutable state is the
    scheduler, which does its own locking.
    """

    def __init__(self, qr_dir: str = QR_OUTPUT_DIR, host: str = '0.0.0.0', port: int = DEFAULT_HTTP_PORT,
                 scheduler: Optional[CarouselScheduler] = None):
        self.qr_dir = qr_dir
        self.frames, self.manifest = load_qr_dir(qr_dir)
        if not self.frames:
            raise FileNotFoundError(f"No QR frames in {qr_dir}; generate them first")
        interval_ms = self.manifest.get('interval_ms', DEFAULT_SLIDE_INTERVAL_MS)
        self.scheduler = scheduler or CarouselScheduler(len(self.frames), interval_ms / 1000.0)
        self.httpd = ThreadingHTTPServer((host, port), self._make_handler())
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.httpd.server_address[1]

    def info(self) -> dict:
        info = {
            'total': len(self.frames),
            'session_id': self.manifest.get('session_id'),
            'file': self.manifest.get('file'),
        }
        info.update(self.scheduler.state())
        return info

    def current(self) -> dict:
        state = self.scheduler.state()
        state['url'] = FRAME_ROUTE + self.frames[state['index']]
        return state

    def control(self, action: str, index: Optional[int] = None) -> dict:
        sched = self.scheduler
        actions = {
            'play': sched.play,
            'pause': sched.pause,
            'toggle': sched.toggle,
            'next': sched.next,
            'prev': sched.previous,
            'first': sched.first,
            'last': sched.last,
        }
        if action == 'seek':
            if isinstance(index, bool) or not isinstance(index, int):
                raise ValueError("seek needs an integer 'index'")
            sched.seek(index)
        elif action in actions:
            actions[action]()
        else:
            raise ValueError(f"unknown action {action!r}")
        return self.current()

    def _make_handler(self):
        server = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                logger.debug("%s - %s", self.address_string(), format % args)

            def do_GET(self):
                path = self.path.split('?', 1)[0]
                if path in ('/', '/index.html'):
                    with open(INDEX_HTML, 'rb') as f:
                        self._send(f.read(), 'text/html; charset=utf-8')
                elif path == '/api/info':
                    self._j(server.info())
                elif path == '/api/frames':
                    self._j({'frames': [FRAME_ROUTE + n for n in server.frames]})
                elif path == '/api/current':
                    self._j(server.current())
                elif path.startswith(FRAME_ROUTE):
                    self._frame(path[len(FRAME_ROUTE):])
                else:
                    self._j({'error': 'not found'}, 404)

            def do_POST(self):
                if self.path != '/api/control':
                    self._j({'error': 'not found'}, 404)
                    return
                try:
                    length = int(self.headers.get('Content-Length', 0))
                    if length < 0:
                        raise ValueError('negative Content-Length')
                    raw = self.rfile.read(length)
                    msg = json.loads(raw or b'{}')
                    if not isinstance(msg, dict):
                        raise ValueError("body must be a JSON object")
                    self._j(server.control(msg.get('action', ''), msg.get('index')))
                except (ValueError, IndexError) as e:
                    self._j({'error': str(e)}, 400)

            def _frame(self, name: str):
                # Only names we generated, nothing that could walk out of the directory.
                if name not in server.frames:
                    self._j({'error': 'not found'}, 404)
                    return
                with open(os.path.join(server.qr_dir, name), 'rb') as f:
                    self._send(f.read(), 'image/svg+xml')

            def _j(self, data, code=200):
                self._send(json.dumps(data).encode(), 'application/json', code)

            def _send(self, body: bytes, content_type: str, code: int = 200):
                self.send_response(code)
                self.send_header('Content-Type', content_type)
                self.send_header('Cache-Control', 'no-store')
                self.send_header('Content-Length', str(len(body)))
                self.end_headers()
                self.wfile.write(body)

        return Handler

    def serve_forever(self):
        logger.info("Carousel of %d frames at http://localhost:%d", len(self.frames), self.port)
        self.httpd.serve_forever()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.httpd.serve_forever, name='carousel-http', daemon=True)
        self._thread.start()
        return self._thread

    def shutdown(self):
        self.httpd.shutdown()
        self.httpd.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
