#!/usr/bin/env python3
import argparse
import base64
import functools
import hmac
import json
import logging
import time
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

from .errors import InvalidRequest, PanelError
from .history import parse_history_payload
from .panel import build_panel
from .settings import load_settings

logger = logging.getLogger("wgpanel")

VERSION = "WgPanel/1.0"


def json_response(handler, payload, status=HTTPStatus.OK):
    body = json.dumps(payload).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def error_response(handler, message, status=HTTPStatus.BAD_REQUEST, **extra):
    payload = {"success": False, "error": str(message)}
    payload.update(extra)
    json_response(handler, payload, status=status)


def panel_error_response(handler, exc, prefix=""):
    error_response(handler, f"{prefix}{exc}", exc.status, reason=exc.reason)


class PanelServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, handler_class, panel, settings):
        self.panel = panel
        self.settings = settings
        super().__init__(address, handler_class)


class PanelHandler(SimpleHTTPRequestHandler):
    server_version = VERSION

    def log_message(self, fmt, *args):
        logger.info("%s %s", self.address_string(), fmt % args)

    @property
    def panel(self):
        return self.server.panel

    def _read_json_body(self):
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = 0
        if length <= 0:
            return {}
        raw = self.rfile.read(length)
        if not raw:
            return {}
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError:
            raise ValueError("invalid JSON body")

    def _api_segments(self):
        parsed = urlparse(self.path)
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) < 2 or parts[0] != "api":
            return parsed, []
        return parsed, parts[1:]

    def _send_auth_required(self):
        body = b"Authentication required\n"
        self.send_response(HTTPStatus.UNAUTHORIZED)
        self.send_header("WWW-Authenticate", 'Basic realm="WireGuard Panel", charset="UTF-8"')
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _is_authorized(self):
        settings = self.server.settings
        if not settings.auth_enabled:
            return True

        header = self.headers.get("Authorization", "").strip()
        if not header.startswith("Basic "):
            return False

        token = header[6:].strip()
        if not token:
            return False

        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except ValueError:
            return False
        if ":" not in decoded:
            return False
        username, password = decoded.split(":", 1)
        user_ok = hmac.compare_digest(username.encode("utf-8"), settings.auth_username.encode("utf-8"))
        pass_ok = hmac.compare_digest(password.encode("utf-8"), settings.auth_password.encode("utf-8"))
        return user_ok and pass_ok

    def _enforce_auth(self):
        if self._is_authorized():
            return True
        self._send_auth_required()
        return False

    def do_GET(self):
        if not self._enforce_auth():
            return
        parsed, segments = self._api_segments()
        if segments:
            return self.handle_api_get(parsed, segments)
        if parsed.path.startswith("/api"):
            return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)

        static_dir = self.server.settings.static_dir
        if static_dir is None or not static_dir.is_dir():
            return error_response(self, "static assets are not configured", HTTPStatus.NOT_FOUND)
        if self.path in {"/", ""}:
            self.path = "/index.html"
        return super().do_GET()

    def do_POST(self):
        if not self._enforce_auth():
            return
        parsed, segments = self._api_segments()
        if not segments:
            return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)
        return self.handle_api_post(parsed, segments)

    def do_DELETE(self):
        if not self._enforce_auth():
            return
        parsed, segments = self._api_segments()
        if not segments:
            return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)
        return self.handle_api_delete(parsed, segments)

    def handle_api_get(self, parsed, segments):
        if segments == ["health"]:
            return json_response(self, {"success": True, "time": time.time(), "version": self.server_version})

        if segments == ["wireguard-files"]:
            try:
                files = self.panel.catalog.list_files()
            except PanelError as exc:
                return panel_error_response(self, exc)
            return json_response(
                self,
                {"success": True, "files": [{"name": p.name, "fullPath": str(p)} for p in files]},
            )

        if segments == ["locations"]:
            try:
                table = self.panel.location_table()
                candidates = self.panel.catalog.list_candidates(table)
            except PanelError as exc:
                return panel_error_response(self, exc, prefix="Cannot load locations: ")
            return json_response(
                self,
                {"success": True, "locations": [c.to_dict(table) for c in candidates]},
            )

        if segments == ["current-config-info"]:
            try:
                info = self.panel.catalog.get_active_info()
            except PanelError as exc:
                return panel_error_response(self, exc)
            return json_response(self, info.to_dict())

        if segments == ["operation-history"]:
            try:
                records = self.panel.history.read()
            except PanelError as exc:
                logger.error("failed to read history: %s", exc)
                return error_response(self, "Cannot read the history.", exc.status)
            return json_response(self, [record.to_dict() for record in records])

        return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)

    def handle_api_post(self, parsed, segments):
        if segments == ["activate-config"]:
            try:
                payload = self._read_json_body()
            except ValueError as exc:
                return error_response(self, str(exc))
            if not isinstance(payload, dict):
                return error_response(self, "request body must be a JSON object")

            try:
                result = self.panel.activate_and_record(payload.get("sourcePath"))
            except InvalidRequest as exc:
                return panel_error_response(self, exc)
            except PanelError as exc:
                logger.error("[ACTIVATE] Error during activation: %s", exc)
                return panel_error_response(self, exc, prefix="Activation error: ")
            return json_response(self, result.to_dict())

        if segments == ["operation-history"]:
            try:
                payload = self._read_json_body()
                if not isinstance(payload, dict):
                    raise ValueError("request body must be a JSON object")
                records = parse_history_payload(payload.get("history"))
            except ValueError as exc:
                return error_response(self, f"invalid history: {exc}")

            try:
                self.panel.history.write(records)
            except PanelError as exc:
                logger.error("failed to write history: %s", exc)
                return error_response(self, "Cannot write the history.", exc.status)
            return json_response(self, {"success": True})

        return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)

    def handle_api_delete(self, parsed, segments):
        if segments == ["operation-history"]:
            try:
                self.panel.history.clear()
            except PanelError as exc:
                logger.error("failed to clear history: %s", exc)
                return error_response(self, "Cannot delete the history.", exc.status)
            return json_response(self, {"success": True})

        return error_response(self, "unknown API endpoint", HTTPStatus.NOT_FOUND)


def create_server(settings, panel=None):
    panel = panel or build_panel(settings)
    directory = str(settings.static_dir) if settings.static_dir else None
    handler = functools.partial(PanelHandler, directory=directory)
    return PanelServer((settings.host, settings.port), handler, panel, settings)


def configure_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="[wgpanel] %(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="WireGuard configuration panel")
    parser.add_argument("--host", help="listen address (default: WGPANEL_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="listen port (default: WGPANEL_PORT or 3003)")
    parser.add_argument("--env-file", default=None, help="path to a .env file (default: ./.env)")
    return parser.parse_args(argv)


def serve(settings):
    configure_logging(settings.log_level)
    server = create_server(settings)
    auth_state = "enabled" if settings.auth_enabled else "disabled"
    if not settings.wireguard_dir:
        logger.warning("WIREGUARD_DIR is not set; catalog and activation requests will fail")
    logger.info("authentication: %s", auth_state)
    logger.info("listening on http://%s:%s", settings.host, server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        server.server_close()


def main(argv=None):
    args = parse_args(argv)
    settings = load_settings(args.env_file)
    if args.host:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    serve(settings)


if __name__ == "__main__":
    main()
