import http.server, socketserver, urllib.parse
import html
import json
import logging
import mimetypes
import os
import secrets
import ssl
import sys

from botocore.exceptions import BotoCoreError, ClientError

from . import templates
from .config import ConfigError, load_settings
from .forms import BadRequest, BodyTooLarge, parse_json, parse_multipart
from .storage import PROXY_PREFIX, BucketStorage, build_s3
from .tokens import expired_cookie, issue_token, read_session_token, session_cookie, verify_token

API_PREFIX = "/api/"
LOGIN_PATH = "/api/login"

# (method, path) -> handler method name
API_ROUTES = {
    ("GET", "/api/list"): "api_list",
    ("POST", "/api/upload"): "api_upload",
    ("POST", "/api/delete"): "api_delete",
    ("POST", "/api/mkdir"): "api_mkdir",
    ("POST", "/api/logout"): "api_logout",
}

STORAGE_ERRORS = (ClientError, BotoCoreError)


def setup_logging(level="INFO", log_file=None):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
    )
    logging.getLogger("botocore").setLevel(logging.WARNING)


def split_target(target):
    path, _, query = target.partition("?")
    return path, urllib.parse.parse_qs(query)


# ---------- HTTP HANDLER ----------
class ManagerHandler(http.server.BaseHTTPRequestHandler):
    server_version = "r2fm"

    @property
    def settings(self):
        return self.server.settings

    @property
    def storage(self):
        return self.server.storage

    def log_message(self, format, *args):
        logging.info("%s %s", self.address_string(), format % args)

    def respond(self, page):
        self.respond_text(200, page, content_type="text/html; charset=utf-8")

    def respond_text(self, status, text, content_type="text/plain; charset=utf-8", headers=None):
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def respond_json(self, status, data, headers=None):
        self.respond_text(status, json.dumps(data), content_type="application/json", headers=headers)

    def respond_page(self):
        self.respond(templates.render_main_page(html.escape(self.settings.bucket)))

    def read_body(self):
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            raise BadRequest("invalid Content-Length")
        if length < 0:
            raise BadRequest("invalid Content-Length")
        if length > self.settings.max_upload_bytes:
            raise BodyTooLarge(f"body of {length} bytes exceeds limit")
        return self.rfile.read(length)

    def is_authenticated(self):
        token = read_session_token(self.headers.get("Cookie", ""))
        return verify_token(self.settings.signing_secret, token)

    # ROUTING
    def route(self, method):
        path, query = split_target(self.path)

        if method == "POST" and path == LOGIN_PATH:
            return self.api_login()

        if not self.is_authenticated():
            if path.startswith(API_PREFIX) or path.startswith(PROXY_PREFIX):
                return self.respond_text(401, "Unauthorized")
            # The page gates itself: its API calls get 401 and show the login cover.
            return self.respond_page()

        if path.startswith(API_PREFIX):
            return self.dispatch_api(method, path, query)
        if path.startswith(PROXY_PREFIX):
            return self.proxy_object(path, query)
        return self.respond_page()

    def do_GET(self):
        self.route("GET")

    def do_POST(self):
        self.route("POST")

    def dispatch_api(self, method, path, query):
        name = API_ROUTES.get((method, path))
        if name is None:
            return self.respond_text(404, "API Not Found")
        try:
            return getattr(self, name)(query)
        except BodyTooLarge:
            return self.respond_text(413, "Payload too large")
        except BadRequest:
            return self.respond_text(400, "Bad request")
        except STORAGE_ERRORS:
            logging.exception("Storage request failed path=%s bucket=%s", path, self.settings.bucket)
            return self.respond_text(500, "Storage request failed")

    # LOGIN
    def api_login(self):
        try:
            data = parse_json(self.read_body())
        except BadRequest:
            data = {}
        password = data.get("password")
        if isinstance(password, str) and secrets.compare_digest(
            password.encode("utf-8"), self.settings.password.encode("utf-8")
        ):
            token = issue_token(self.settings.signing_secret)
            logging.info("Login succeeded client=%s", self.client_address[0])
            return self.respond_json(200, {"success": True}, headers={"Set-Cookie": session_cookie(token)})
        logging.warning("Login failed client=%s", self.client_address[0])
        return self.respond_text(401, "Unauthorized")

    def api_logout(self, query):
        # Tokens are stateless; a copied token stays valid until it expires.
        logging.info("Logout client=%s", self.client_address[0])
        return self.respond_json(200, {"success": True}, headers={"Set-Cookie": expired_cookie()})

    # STORAGE API
    def api_list(self, query):
        folder = query.get("folder", [""])[0]
        return self.respond_json(200, self.storage.list_folder(folder))

    def api_upload(self, query):
        body = self.read_body()
        fields, files = parse_multipart(self.headers.get("Content-Type", ""), body)
        key = fields.get("key", "")
        upload = files.get("file")
        if not key or upload is None:
            return self.respond_text(400, "Missing key or file in form data")
        self.storage.put(key, upload.data, upload.content_type)
        return self.respond_text(200, "OK")

    def api_delete(self, query):
        key = parse_json(self.read_body()).get("key")
        if not isinstance(key, str) or not key:
            return self.respond_text(400, "No key!")
        self.storage.delete(key)
        return self.respond_text(200, "OK")

    def api_mkdir(self, query):
        folder = parse_json(self.read_body()).get("folder")
        if not isinstance(folder, str) or not folder.strip("/"):
            return self.respond_text(400, "No folder!")
        self.storage.make_folder(folder)
        return self.respond_text(200, "OK")

    # PROXY
    def proxy_object(self, path, query):
        key = urllib.parse.unquote(path[len(PROXY_PREFIX):])
        if not key:
            return self.respond_text(404, "Not found")
        try:
            obj = self.storage.get(key)
        except STORAGE_ERRORS:
            logging.exception("Fetch failed key=%s bucket=%s", key, self.settings.bucket)
            return self.respond_text(500, "Storage request failed")
        if obj is None:
            return self.respond_text(404, "Not found")

        content_type = obj.get("ContentType") or mimetypes.guess_type(key)[0] or "application/octet-stream"
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        if obj.get("ETag"):
            self.send_header("ETag", obj["ETag"])
        if "ContentLength" in obj:
            self.send_header("Content-Length", str(obj["ContentLength"]))
        self.send_header("Cache-Control", "private, max-age=86400")
        if query.get("download", [""])[0] in ("1", "true"):
            filename = urllib.parse.quote(os.path.basename(key))
            self.send_header("Content-Disposition", f"attachment; filename*=UTF-8''{filename}")
        self.end_headers()

        body = obj["Body"]
        try:
            while True:
                chunk = body.read(8192)
                if not chunk:
                    break
                self.wfile.write(chunk)
        except (BotoCoreError, OSError):
            # Headers are already sent; dropping the connection is all that is left.
            logging.exception("Streaming failed key=%s bucket=%s", key, self.settings.bucket)
            self.close_connection = True
        finally:
            body.close()


# ---------- HTTP SERVER ----------
class ManagerServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address, settings, storage):
        self.settings = settings
        self.storage = storage
        super().__init__(address, ManagerHandler)


def enable_tls(httpd, cert_file, key_file):
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    httpd.socket = context.wrap_socket(httpd.socket, server_side=True)


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging()
        logging.error("Invalid configuration: %s", e)
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_file)
    storage = BucketStorage(build_s3(settings), settings.bucket)
    scheme = "HTTPS" if settings.tls_cert else "HTTP"
    try:
        with ManagerServer((settings.host, settings.port), settings, storage) as httpd:
            if settings.tls_cert:
                enable_tls(httpd, settings.tls_cert, settings.tls_key)
            logging.info("Serving bucket manager for %s on port %s (%s)", settings.bucket, settings.port, scheme)
            httpd.serve_forever()
    except OSError as e:
        logging.error("Server failed to start on port %s: %s", settings.port, e)
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Shutting down")

