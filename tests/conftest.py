import json
import socket
import sys
import textwrap
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest


# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body=None):
        self.status_code = status_code
        if body is None:
            body = json.dumps(payload if payload is not None else {}).encode("utf-8")
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._body), chunk_size):
            yield self._body[start:start + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for ``requests``; records every GET in order."""

    def __init__(self, routes):
        self.routes = dict(routes)
        self.calls = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        outcome = self.routes.get(url)
        if outcome is None:
            return FakeResponse(status_code=404, payload={"error": "not found"})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_registry():
    from engine.registry import build_registry

    def _make(*providers):
        return build_registry({"version": 1, "providers": list(providers)})

    return _make


@pytest.fixture
def fake_ytdlp(tmp_path):
    """Write an executable stand-in for the yt-dlp binary and return its path."""
    if sys.platform.startswith("win"):
        pytest.skip("fake extractor scripts need a POSIX shebang")
    counter = {"n": 0}

    def _make(body):
        counter["n"] += 1
        path = tmp_path / f"yt-dlp-{counter['n']}"
        path.write_text(f"#!{sys.executable}\nimport sys\n{textwrap.dedent(body)}\n", encoding="utf-8")
        path.chmod(0o755)
        return str(path)

    return _make


@pytest.fixture
def silent_server():
    """A TCP endpoint that accepts connections and never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    port = sock.getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        sock.close()


@pytest.fixture
def drip_server():
    """Send valid headers, then one body byte every 0.2s for eight seconds."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(4)
    stop = threading.Event()

    def _serve():
        try:
            conn, _ = sock.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nContent-Length: 40\r\n\r\n")
                for _ in range(40):
                    if stop.wait(0.2):
                        return
                    conn.sendall(b" ")
            except OSError:
                return

    threading.Thread(target=_serve, daemon=True).start()
    try:
        yield f"http://127.0.0.1:{sock.getsockname()[1]}"
    finally:
        stop.set()
        sock.close()


@pytest.fixture
def json_server():
    """Serve a fixed JSON payload on every GET; returns the base URL."""
    servers = []

    def _start(payload, status=200):
        body = json.dumps(payload).encode("utf-8")

        class _Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, *args):
                pass

        server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()
