"""LiveReload channel.

Browsers running livereload.js connect to ws://host:<port>/livereload and
speak the LiveReload protocol:

    client -> {"command": "hello", "protocols": [".../official-7"]}
    server -> {"command": "hello", "protocols": [...], "serverName": "assetpipe"}
    server -> {"command": "reload", "path": "/styles/main.css", "liveCSS": true}

ReloadHub keeps the connected clients and turns build output paths into
paths as the browser sees them. LiveReloadServer runs a tornado websocket
endpoint in its own thread and feeds the hub from there.
"""

import asyncio
import json
import posixpath
import threading
from typing import Iterable, List, Optional, Set

import tornado.web
import tornado.websocket
from tornado.ioloop import IOLoop

from ..reporter import Reporter
from .coordinator import RELOAD_ALL

PROTOCOL = 'http://livereload.com/protocols/official-7'
SERVER_NAME = 'assetpipe'


def hello_message() -> dict:
    return {'command': 'hello', 'protocols': [PROTOCOL], 'serverName': SERVER_NAME}


def reload_message(path: str) -> dict:
    return {'command': 'reload', 'path': path, 'liveCSS': True}


class ReloadHub:
    """Connected reload clients.

    A client is anything with a send(message: dict) method.
    """

    def __init__(self, served_root: str = 'build', reporter: Optional[Reporter] = None):
        self.served_root = served_root.strip('/')
        self.reporter = reporter if reporter is not None else Reporter()
        self._clients: Set = set()
        self._lock = threading.Lock()

    @property
    def clients(self) -> List:
        with self._lock:
            return list(self._clients)

    def add(self, client) -> None:
        with self._lock:
            self._clients.add(client)

    def remove(self, client) -> None:
        with self._lock:
            self._clients.discard(client)

    def served_path(self, path: str) -> str:
        """"build/styles/main.css" -> "/styles/main.css"."""
        if path == RELOAD_ALL:
            return path
        if self.served_root and (path == self.served_root
                                 or path.startswith(self.served_root + '/')):
            path = posixpath.relpath(path, self.served_root)
        return '/' + path.lstrip('/')

    def messages(self, paths: Iterable[str]) -> List[dict]:
        return [reload_message(self.served_path(p)) for p in sorted(paths)]

    def notify(self, paths: Iterable[str]) -> None:
        """Send one reload command per path to every client."""
        messages = self.messages(paths)
        for client in self.clients:
            for message in messages:
                try:
                    client.send(message)
                except tornado.websocket.WebSocketClosedError:
                    self.remove(client)
                    break


class LiveReloadHandler(tornado.websocket.WebSocketHandler):
    """One browser connection."""

    def initialize(self, hub: ReloadHub):
        self.hub = hub

    def check_origin(self, origin):
        # the page is served by the dev server on another port
        return True

    def on_message(self, message):
        try:
            data = json.loads(message)
        except ValueError:
            return
        if not isinstance(data, dict):
            return
        if data.get('command') == 'hello':
            self.send(hello_message())
            self.hub.add(self)

    def send(self, message: dict) -> None:
        self.write_message(json.dumps(message))

    def on_close(self):
        self.hub.remove(self)


def make_app(hub: ReloadHub) -> tornado.web.Application:
    return tornado.web.Application([
        (r'/livereload', LiveReloadHandler, {'hub': hub}),
    ])


class LiveReloadServer:
    """Tornado websocket server for the LiveReload protocol.

    Runs its own event loop in a daemon thread. notify() may be called from
    any thread.
    """

    def __init__(self, hub: ReloadHub, port: int = 31452, address: str = ''):
        self.hub = hub
        self.port = port
        self.address = address
        self._loop: Optional[IOLoop] = None
        self._stopping: Optional[asyncio.Event] = None
        self._started = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

    async def _serve(self):
        server = make_app(self.hub).listen(self.port, self.address)
        self._loop = IOLoop.current()
        self._stopping = asyncio.Event()
        self._started.set()
        try:
            await self._stopping.wait()
        finally:
            server.stop()

    def _run(self):
        try:
            asyncio.run(self._serve())
        except OSError as exc:
            self._error = exc
            self._started.set()

    def start(self) -> None:
        """Start listening. Raises OSError when the port is not available."""
        self._thread = threading.Thread(
            target=self._run, name='livereload', daemon=True)
        self._thread.start()
        self._started.wait()
        if self._error is not None:
            raise self._error

    def notify(self, paths: Iterable[str]) -> None:
        paths = set(paths)
        if self._loop is None:
            return
        self._loop.add_callback(self.hub.notify, paths)

    def stop(self) -> None:
        if self._loop is not None and self._stopping is not None:
            self._loop.add_callback(self._stopping.set)
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._loop = None
