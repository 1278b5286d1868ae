"""HTTPS server receiving AdmissionReviews and the command that starts it."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import ssl
import threading
from collections.abc import Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

from .admission import AdmissionRequest
from .client import ClientConfig, ProfileClient
from .webhook import AdmissionController, configure_logging

logger = logging.getLogger(__name__)

VALIDATE_PATH = "/validate-resource"
DEFAULT_PORT = 9443
TLS_DIR = "/run/secrets/tls"
DEFAULT_METRICS_ADDR = ":8080"


def build_parser() -> argparse.ArgumentParser:
    """Command-line options of the admission controller."""
    parser = argparse.ArgumentParser(description="Validating admission webhook for signed manifests.")
    parser.add_argument(
        "--metrics-addr",
        default=DEFAULT_METRICS_ADDR,
        help="The address the metric endpoint binds to.",
    )
    parser.add_argument(
        "--enable-leader-election",
        action="store_true",
        help="Enable leader election for controller manager. "
        "Enabling this will ensure there is only one active controller manager.",
    )
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Port the webhook listens on.")
    parser.add_argument("--cert-dir", default=TLS_DIR, help="Directory holding tls.crt and tls.key.")
    return parser


def handle_review(controller: AdmissionController, body: bytes | str) -> dict[str, Any]:
    """Answer an encoded AdmissionReview; raises ValueError if it is malformed."""
    review = json.loads(body)
    if not isinstance(review, dict):
        raise ValueError("admission review must be a JSON object")
    request = AdmissionRequest.from_dict(review.get("request"))
    response = controller.process_request(request)
    answer = response.to_review(request.uid)
    if review.get("apiVersion"):
        answer["apiVersion"] = str(review["apiVersion"])
    return answer


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    controller: AdmissionController


class _ReviewHandler(BaseHTTPRequestHandler):
    server: _HTTPServer

    def _send_json(self, code: int, payload: Any) -> None:
        data = json.dumps(payload).encode()
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_POST(self) -> None:  # noqa: N802
        if self.path.split("?", 1)[0] != VALIDATE_PATH:
            self.send_error(404)
            return
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length)
        try:
            review = handle_review(self.server.controller, body)
        except ValueError as exc:
            self._send_json(400, {"error": str(exc)})
            return
        except Exception as exc:  # the webhook must answer even if a handler fails
            logger.exception("failed to handle admission review")
            self._send_json(500, {"error": str(exc)})
            return
        self._send_json(200, review)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug(format, *args)


def _tls_context(cert_dir: str | os.PathLike[str]) -> ssl.SSLContext:
    base = Path(cert_dir)
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(base / "tls.crt", base / "tls.key")
    return context


class ValidationServer:
    """Serves the validating webhook; uses TLS when a certificate directory is given."""

    def __init__(
        self,
        controller: AdmissionController,
        host: str = "",
        port: int = DEFAULT_PORT,
        cert_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self._httpd = _HTTPServer((host, port), _ReviewHandler)
        self._httpd.controller = controller
        if cert_dir is not None:
            try:
                context = _tls_context(cert_dir)
            except OSError:
                self._httpd.server_close()
                raise
            self._httpd.socket = context.wrap_socket(self._httpd.socket, server_side=True)
        self._started = threading.Event()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        """Host and port the server is bound to."""
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def serve_forever(self) -> None:
        """Handle requests until shut down."""
        self._started.set()
        self._httpd.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and release the socket; safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._started.is_set():
            self._httpd.shutdown()
        self._httpd.server_close()

    def __enter__(self) -> ValidationServer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()


def main(argv: Sequence[str] | None = None) -> int:
    """Start the webhook server inside a cluster; returns the exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(os.environ)
    try:
        config = ClientConfig.in_cluster()
    except (ValueError, OSError) as exc:
        logger.error("unable to start manager: %s", exc)
        return 1
    controller = AdmissionController(ProfileClient(config))
    try:
        server = ValidationServer(controller, port=args.port, cert_dir=args.cert_dir)
    except OSError as exc:
        logger.error("unable to start manager: %s", exc)
        return 1

    def _stop(signum: int, frame: Any) -> None:
        threading.Thread(target=server.shutdown, daemon=True).start()

    try:
        signal.signal(signal.SIGTERM, _stop)
    except ValueError:
        pass

    logger.info(
        "starting manager (metrics %s, leader election %s)",
        args.metrics_addr,
        args.enable_leader_election,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.shutdown()
    return 0