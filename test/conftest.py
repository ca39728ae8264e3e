from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from collections import Counter
from threading import Thread, Lock
import pytest


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow to run")

def pytest_collection_modifyitems(config, items):

    if config.getoption("--runslow"):
        return

    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class LocalServer:
    """A local HTTP server serving in-memory routes. A route is either the bytes of
    the body, or a callable taking the request handler and writing the response itself.
    """

    def __init__(self) -> None:
        self.routes = {}
        self.hits = Counter()
        self.lock = Lock()
        self.httpd = _Server(("127.0.0.1", 0), _RouteHandler)
        self.httpd.local = self
        self.url = f"http://127.0.0.1:{self.httpd.server_address[1]}/"

    def add(self, path: str, route) -> str:
        """Add a route and return its full URL.
        """
        path = path.lstrip("/")
        self.routes[f"/{path}"] = route
        return f"{self.url}{path}"


class _Server(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 64


class _RouteHandler(BaseHTTPRequestHandler):

    def do_GET(self):

        local: LocalServer = self.server.local
        with local.lock:
            local.hits[self.path] += 1

        route = local.routes.get(self.path)
        if route is None:
            self.send_error(404)
        elif callable(route):
            route(self)
        else:
            send_bytes(self, route)

    def log_message(self, format, *args):
        pass


def send_bytes(handler: BaseHTTPRequestHandler, data: bytes, status: int = 200) -> None:
    handler.send_response(status)
    handler.send_header("Content-Length", str(len(data)))
    handler.end_headers()
    handler.wfile.write(data)


@pytest.fixture
def http_server():
    """Local server serving in-memory routes, no test reaches the network.
    """

    server = LocalServer()
    thread = Thread(target=server.httpd.serve_forever, daemon=True)
    thread.start()
    yield server
    server.httpd.shutdown()
    server.httpd.server_close()


@pytest.fixture
def tmp_context(tmp_path):
    """This fixture is used to create a game's install context for a single test.
    """

    from lapis.standard import Context
    return Context(tmp_path / "game")


class CollectWatcher:
    """Watcher keeping every event it receives.
    """

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]
