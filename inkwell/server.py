"""Development server for Inkwell.

``inkwell serve`` keeps a local copy of the site fresh while writing:

- Every build goes into a staging directory that is swapped into place
  when complete, so the served directory is never half-written.
- HTML responses get a small script that listens for reload messages;
  unknown paths get the site's ``404.html``.
- Changes under the input directory (or to ``inkwell.yaml``) trigger a
  rebuild, after which connected browsers reload.

Key classes:
- DevServer: Builds, serves and watches a project.
- LiveReloadHub: Websocket endpoint broadcasting reload messages.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
import yaml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildError, build_site
from .config import SETTINGS_FILE, ConfigError, load_settings

logger = logging.getLogger(__name__)

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""

NOT_FOUND_PAGE = "404.html"


def inject_reload_script(content: str, script: str) -> str:
    """Insert the reload script before ``</body>``, or append it."""
    if "</body>" in content:
        return content.replace("</body>", f"{script}</body>", 1)
    return content + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """Static file handler that adds the reload script to HTML pages."""

    def __init__(self, *args, reload_script: str = "", **kwargs):
        self.reload_script = reload_script
        super().__init__(*args, **kwargs)

    def end_headers(self):
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format, *args):  # pragma: no cover - quiet access log
        logger.debug("%s %s", self.address_string(), format % args)

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            return self._send_page(Path(self.directory) / NOT_FOUND_PAGE, 404)
        if target.suffix == ".html":
            return self._send_page(target, 200)
        return super().send_head()

    def _send_page(self, page: Path, status: int):
        if not page.is_file():
            self.send_error(404, "File not found")
            return None
        body = inject_reload_script(page.read_text(encoding="utf-8"), self.reload_script)
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)
        return None


class LiveReloadHub:
    """Websocket endpoint that tells connected browsers to reload.

    Attributes:
        port: Websocket port.
        clients: Currently connected websockets.
    """

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop: asyncio.AbstractEventLoop | None = None

    async def handler(self, websocket):
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    async def serve(self) -> None:  # pragma: no cover - integration path
        self.loop = asyncio.get_running_loop()
        async with websockets.serve(self.handler, "0.0.0.0", self.port):
            await asyncio.Future()

    async def broadcast(self, message: str) -> None:
        """Send a message to every client, forgetting closed connections."""
        closed = set()
        for client in list(self.clients):
            try:
                await client.send(message)
            except websockets.ConnectionClosed:
                closed.add(client)
        self.clients -= closed

    def notify_reload(self) -> None:
        """Schedule a reload broadcast from any thread."""
        if self.loop is None:
            return
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self.broadcast(message), self.loop)


class DevServer:
    """Development server with live reload.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory being served.
        http_port: Port for the HTTP server.
        ws_port: Port for live-reload websocket connections.
        hub: Live-reload websocket endpoint.
    """

    def __init__(
        self, project_root: Path, http_port: int | None = None, ws_port: int | None = None
    ):
        self.project_root = project_root
        self.settings = load_settings(project_root)
        self.output_dir = self.settings.output_dir
        self.staging_dir = self.output_dir.with_name(f"{self.output_dir.name}.staging")
        self.http_port = http_port or self.settings.port
        if ws_port is None:
            # A configured ws_port only applies alongside the configured port.
            if http_port is None and self.settings.ws_port:
                ws_port = int(self.settings.ws_port)
            else:
                ws_port = self.http_port + 1
        self.ws_port = ws_port
        self.reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)
        self.hub = LiveReloadHub(self.ws_port)
        self._observer: Observer | None = None
        self._build_lock = threading.Lock()
        self._signature: tuple | None = None

    def start(self) -> None:  # pragma: no cover - integration path
        """Build once, then serve and watch until interrupted."""
        self.build()
        self._signature = self.source_signature()
        handler = functools.partial(
            _ReloadHandler, directory=str(self.output_dir), reload_script=self.reload_script
        )
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        threading.Thread(target=httpd.serve_forever, daemon=True).start()
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        self._observer = self._watch()
        try:
            asyncio.run(self._serve_reload())
        except KeyboardInterrupt:
            pass
        finally:
            httpd.shutdown()
            self.stop()

    async def _serve_reload(self) -> None:  # pragma: no cover - integration path
        try:
            await self.hub.serve()
        except OSError as exc:
            logger.error(
                "Live reload unavailable on port %d (%s); pages will not auto-refresh",
                self.ws_port,
                exc,
            )
            await asyncio.Event().wait()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def _watch(self) -> Observer:  # pragma: no cover - integration path
        handler = _ChangeHandler(self)
        observer = Observer()
        observer.schedule(handler, str(self.settings.input_dir), recursive=True)
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        return observer

    def build(self) -> None:
        """Build into the staging directory and swap it into place."""
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir)
        build_site(self.project_root, output_dir_override=self.staging_dir)
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        os.replace(self.staging_dir, self.output_dir)

    def is_ignored(self, path: Path) -> bool:
        """Check whether a changed path must not trigger a rebuild."""
        if "node_modules" in path.parts:
            return True
        return any(path.is_relative_to(d) for d in (self.output_dir, self.staging_dir))

    def rebuild(self) -> bool:
        """Rebuild if sources changed since the last build.

        Build errors are logged and the previous output keeps being served.

        Returns:
            True if a rebuild ran and succeeded.
        """
        if not self._build_lock.acquire(blocking=False):
            return False
        try:
            signature = self.source_signature()
            if signature == self._signature:
                return False
            logger.info("Change detected; rebuilding")
            try:
                self.build()
            except (BuildError, ConfigError, yaml.YAMLError, OSError) as exc:
                logger.error("Build failed: %s", exc)
                return False
            self._signature = signature
            self.hub.notify_reload()
            return True
        finally:
            self._build_lock.release()

    def source_signature(self) -> tuple:
        """Return (path, mtime, size) for every watched source file."""
        candidates = [self.project_root / SETTINGS_FILE]
        if self.settings.input_dir.is_dir():
            candidates.extend(sorted(self.settings.input_dir.rglob("*")))
        signature = []
        for path in candidates:
            if not path.is_file():
                continue
            try:
                stat = path.stat()
            except OSError:
                continue
            signature.append((str(path), stat.st_mtime_ns, stat.st_size))
        return tuple(signature)


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory or self.server.is_ignored(Path(event.src_path)):
            return
        self.server.rebuild()
