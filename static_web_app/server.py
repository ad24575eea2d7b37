from __future__ import annotations

import logging
import signal
import socket
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from flask import Flask, Response, request, send_from_directory
from werkzeug.exceptions import HTTPException, InternalServerError, NotFound
from werkzeug.serving import BaseWSGIServer, make_server, select_address_family

from static_web_app.settings import ConfigError, Settings, load_settings


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class StartupBindError(RuntimeError):
    """The listening socket could not be bound."""

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(f"Unable to bind {host}:{port}: {cause.strerror or cause}")
        self.host = host
        self.port = port
        self.cause = cause


def route_table(settings: Settings) -> Mapping[str, Path]:
    """Map each exact request path to the absolute file it serves."""
    static_dir = Path(settings.static_dir).resolve()
    return MappingProxyType(
        {
            "/": static_dir / settings.index_file,
            "/about": static_dir / settings.about_file,
        }
    )


def _plain_error(exc: HTTPException) -> Response:
    response = exc.get_response()
    response.set_data(f"{exc.code} {exc.name}\n")
    response.mimetype = "text/plain"
    return response


def _page_view(path: Path) -> Callable[[], Response]:
    def view() -> Response:
        return send_from_directory(path.parent, path.name)

    return view


def create_app(settings: Optional[Settings] = None) -> Flask:
    """Build the WSGI application serving the route table and static assets."""
    settings = settings or load_settings()
    static_dir = Path(settings.static_dir).resolve()

    app = Flask(__name__, static_folder=None)
    app.config["SETTINGS"] = settings

    for rule, path in route_table(settings).items():
        endpoint = rule.strip("/") or "index"
        app.add_url_rule(rule, endpoint, _page_view(path), methods=["GET"])

    @app.get("/<path:filename>")
    def static_files(filename: str) -> Response:
        """Serve any other file found under the static directory."""
        return send_from_directory(static_dir, filename)

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        if exc.code is None:
            return exc
        return _plain_error(exc)

    @app.errorhandler(OSError)
    def file_read_error(exc: OSError) -> Response:
        # The file can disappear between the existence check and the open.
        if isinstance(exc, FileNotFoundError):
            return _plain_error(NotFound())
        app.logger.error("Failed to read file for %s: %s", request.path, exc)
        return _plain_error(InternalServerError())

    return app


def create_listener(host: str, port: int) -> socket.socket:
    family = select_address_family(host, port)
    try:
        return socket.create_server((host, port), family=family)
    except OSError as exc:
        raise StartupBindError(host, port, exc) from exc


def build_server(settings: Settings, app: Optional[Flask] = None) -> BaseWSGIServer:
    """Bind the configured port and wrap it in a thread-per-connection server."""
    app = app or create_app(settings)
    listener = create_listener(settings.host, settings.port)
    try:
        return make_server(
            settings.host,
            settings.port,
            app,
            threaded=True,
            fd=listener.fileno(),
        )
    finally:
        # make_server duplicates the descriptor.
        listener.close()


def serve(settings: Settings, app: Optional[Flask] = None) -> None:
    server = build_server(settings, app)
    logging.info("Server listening on port %d", server.port)
    try:
        server.serve_forever()
    finally:
        server.server_close()


def _handle_sigterm(signum: int, _frame) -> None:
    logging.info("Received signal %d, shutting down", signum)
    raise SystemExit(0)


def _install_signal_handlers() -> None:
    # PID 1 in a container ignores SIGTERM unless a handler is installed.
    signal.signal(signal.SIGTERM, _handle_sigterm)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.critical("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    logging.getLogger().setLevel(settings.log_level)

    _install_signal_handlers()
    try:
        serve(settings)
    except StartupBindError as exc:
        logging.critical("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
