"""HTTP control server the guest talks to during install and workload runs."""

from __future__ import annotations

import tempfile
import threading
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from buildlet.constants import CONTROL_PORT, DISK_LAYOUT, UPLOAD_NAME
from buildlet.exceptions import ManagerError
from buildlet.utils import log

_CHUNK_SIZE = 64 * 1024


class ControlRequestHandler(SimpleHTTPRequestHandler):
    """Serves install.conf, the disklabel template and /pub, accepts the result upload."""

    server: "ControlServer"

    def __init__(self, request, client_address, server: "ControlServer") -> None:
        super().__init__(request, client_address, server, directory=str(server.artifact_dir))

    def log_message(self, format: str, *args) -> None:  # noqa: A002 - stdlib signature
        log("DEBUG", f"control {self.address_string()} {format % args}")

    def _send_text(self, text: str) -> None:
        body = text.encode("utf-8")
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _rewrite_pub(self) -> bool:
        path = urlsplit(self.path).path
        if path != "/pub" and not path.startswith("/pub/"):
            return False
        self.path = "/" + self.path[len("/pub"):].lstrip("/")
        return True

    def _text_for(self, path: str) -> Optional[str]:
        if path == "/disklabel":
            return self.server.disk_layout
        if path == "/install.conf":
            return self.server.install_conf
        return None

    def do_GET(self) -> None:
        path = urlsplit(self.path).path
        text = self._text_for(path)
        if text is not None:
            self._send_text(text)
        elif self._rewrite_pub():
            super().do_GET()
        else:
            log("WARN", f"Unexpected request for {path} from guest")
            self.send_error(HTTPStatus.NOT_FOUND)

    def do_HEAD(self) -> None:
        text = self._text_for(urlsplit(self.path).path)
        if text is not None:
            self._send_text(text)
        elif self._rewrite_pub():
            super().do_HEAD()
        else:
            self.send_error(HTTPStatus.NOT_FOUND)

    def _discard(self, remaining: int) -> None:
        # unread body bytes would turn our reply into a connection reset
        while remaining > 0:
            chunk = self.rfile.read(min(_CHUNK_SIZE, remaining))
            if not chunk:
                return
            remaining -= len(chunk)

    def do_POST(self) -> None:
        length_raw = self.headers.get("Content-Length")
        if length_raw is None:
            self.send_error(HTTPStatus.LENGTH_REQUIRED)
            return
        try:
            remaining = int(length_raw)
        except ValueError:
            self.send_error(HTTPStatus.BAD_REQUEST, "Invalid Content-Length")
            return

        # the previous result stays in place until a complete body has arrived
        upload = self.server.upload_path
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(dir=upload.parent, prefix=".upload-", delete=False) as out:
                tmp_path = Path(out.name)
                while remaining > 0:
                    chunk = self.rfile.read(min(_CHUNK_SIZE, remaining))
                    if not chunk:
                        break
                    remaining -= len(chunk)
                    out.write(chunk)
            if remaining == 0:
                tmp_path.replace(upload)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            log("ERROR", f"Error writing upload to {upload}: {exc}")
            self._discard(remaining)
            self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Error writing request body")
            return
        if remaining > 0:
            tmp_path.unlink(missing_ok=True)
            log("WARN", f"Upload to {upload} ended {remaining} bytes early; keeping the previous result")
            self.send_error(HTTPStatus.BAD_REQUEST, "Truncated request body")
            return

        log("INFO", f"Received {upload.stat().st_size} bytes into {upload}")
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Length", "0")
        self.end_headers()


class ControlServer(ThreadingHTTPServer):
    """Per-build HTTP server; listening as soon as it is constructed."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(
        self,
        artifact_dir: Path,
        install_conf: str,
        disk_layout: str = DISK_LAYOUT,
        port: int = CONTROL_PORT,
        host: str = "",
    ) -> None:
        self.artifact_dir = Path(artifact_dir)
        self.install_conf = install_conf
        self.disk_layout = disk_layout
        self._thread: Optional[threading.Thread] = None
        try:
            super().__init__((host, port), ControlRequestHandler)
        except OSError as exc:
            raise ManagerError(f"Control server could not listen on port {port}: {exc}") from exc

    @property
    def port(self) -> int:
        return self.server_address[1]

    @property
    def upload_path(self) -> Path:
        return self.artifact_dir / UPLOAD_NAME

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.serve_forever, name="control-server", daemon=True)
        self._thread.start()
        log("INFO", f"Control server listening on port {self.port} (serving {self.artifact_dir})")

    def close(self) -> None:
        if self._thread is not None:
            self.shutdown()
            self._thread.join()
            self._thread = None
        self.server_close()
        log("DEBUG", f"Control server on port {self.port} stopped")

    def __enter__(self) -> "ControlServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
