"""JSON HTTP surface for triggering crawls and reading crawler health.

    POST /api/crawler/trigger   start run_all() in the background (bearer token)
    POST /api/crawler/test      crawl one detail URL synchronously (bearer token)
    GET  /api/crawler/health    health summary
"""

import hmac
import http.server
import json
import logging
import os
import socketserver
import threading
from dataclasses import asdict

import config as config
from orchestrator import CrawlInProgressError, CrawlOrchestrator, UnknownSourceError

logger = logging.getLogger(__name__)

MAX_BODY = 64 * 1024  # JSON bodies are a URL and a source name


def _run_in_background(orchestrator: CrawlOrchestrator) -> None:
    try:
        orchestrator.run_all()
    except CrawlInProgressError:
        logger.warning("Background crawl skipped: another crawl is already running")
    except Exception as e:
        logger.error(f"Background crawl failed: {e}", exc_info=True)


def make_handler(orchestrator: CrawlOrchestrator, api_token: str | None = None):
    """Build a request handler class bound to ``orchestrator``.

    An empty token rejects every authenticated request.
    """
    token = config.API_TOKEN if api_token is None else api_token

    class CrawlerHandler(http.server.BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def _send_json(self, status: int, payload: dict):
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(body)

        def _authorized(self) -> bool:
            header = self.headers.get("Authorization", "")
            scheme, _, supplied = header.partition(" ")
            if token and scheme.lower() == "bearer" and hmac.compare_digest(supplied.strip(), token):
                return True
            self._send_json(401, {"error": "Unauthorized"})
            return False

        def _read_json(self):
            """Parse the request body; sends a 4xx and returns None on failure."""
            length = int(self.headers.get("Content-Length") or 0)
            if length > MAX_BODY:
                self._send_json(413, {"error": "Request body too large"})
                return None
            if not length:
                self._send_json(400, {"error": "No request body"})
                return None
            try:
                data = json.loads(self.rfile.read(length))
            except (json.JSONDecodeError, UnicodeDecodeError):
                self._send_json(400, {"error": "Invalid JSON"})
                return None
            if not isinstance(data, dict):
                self._send_json(400, {"error": "Expected a JSON object"})
                return None
            return data

        def do_GET(self):
            if self.path.split("?")[0] == "/api/crawler/health":
                self._send_json(200, orchestrator.get_health())
            else:
                self._send_json(404, {"error": "Not found"})

        def do_POST(self):
            path = self.path.split("?")[0]
            if path == "/api/crawler/trigger":
                self._handle_trigger()
            elif path == "/api/crawler/test":
                self._handle_test()
            else:
                self._send_json(404, {"error": "Not found"})

        def _handle_trigger(self):
            if not self._authorized():
                return
            if orchestrator.is_running:
                self._send_json(409, {"error": "Crawl already in progress"})
                return
            thread = threading.Thread(target=_run_in_background, args=(orchestrator,), daemon=True)
            thread.start()
            logger.info("Crawl triggered over HTTP")
            self._send_json(202, {
                "accepted": True,
                "message": "Crawl started",
                "sources": [s.name for s in orchestrator.sources],
            })

        def _handle_test(self):
            if not self._authorized():
                return
            data = self._read_json()
            if data is None:
                return

            url = data.get("url")
            source = data.get("source")
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                self._send_json(400, {"error": "Field 'url' must be an http(s) URL"})
                return
            if source is not None and not isinstance(source, str):
                self._send_json(400, {"error": "Field 'source' must be a string"})
                return

            try:
                result = orchestrator.crawl_specific_url(url, source)
            except UnknownSourceError as e:
                self._send_json(404, {"error": str(e)})
                return
            except CrawlInProgressError:
                self._send_json(409, {"error": "Crawl already in progress"})
                return
            except Exception as e:
                logger.error(f"Test crawl of {url} failed: {e}", exc_info=True)
                self._send_json(500, {"error": "Test crawl failed"})
                return
            self._send_json(200, {"url": url, "result": asdict(result)})

        def log_message(self, format, *args):
            logger.debug(f"{self.address_string()} {format % args}")

    return CrawlerHandler


class ThreadedHTTPServer(socketserver.ThreadingMixIn, http.server.HTTPServer):
    daemon_threads = True


def serve(orchestrator: CrawlOrchestrator, port: int = 8080) -> None:
    bind_addr = os.environ.get("BIND_ADDR", "localhost")
    if not config.API_TOKEN:
        logger.warning("CRAWLER_API_TOKEN is not set; trigger and test endpoints will reject every request")

    with ThreadedHTTPServer((bind_addr, port), make_handler(orchestrator)) as server:
        print(f"Serving crawler API at http://{bind_addr}:{port}")
        print("Press Ctrl+C to stop")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            print("\nStopped.")
