"""
Pytest fixtures for enginekit tests.

Applications and engines are built on disk under tmp_path so the loaders
(routes files, helpers, controllers, plugins, seeds) run against real files.
"""

import asyncio
import textwrap
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from enginekit import Application, Engine


class Tree:
    """A directory that test code writes source files into."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def write(self, relative: str, content: str = "") -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"))
        return path


@pytest.fixture
def app_tree(tmp_path):
    """Root directory of the host application."""
    return Tree(tmp_path / "app_template")


@pytest.fixture
def plugin_tree(tmp_path):
    """Root directory of the bukkits engine."""
    return Tree(tmp_path / "bukkits")


@pytest.fixture
def make_app(app_tree):
    """Build an Application rooted at app_tree with test-friendly settings."""

    def build(**config_values):
        settings = {
            "environment": "development",
            "log_level": "WARNING",
            "serve_static_assets": True,
            "show_exceptions": False,
            "cors_allowed_origins": [],
        }
        settings.update(config_values)
        return Application("app_template", root=app_tree.root, **settings)

    return build


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def bukkits(app, plugin_tree):
    """A shared (non-isolated) engine added to the application."""
    return app.add_engine(Engine("bukkits", root=plugin_tree.root))


@pytest.fixture
def isolated_bukkits(app, plugin_tree):
    """An engine isolated in the "bukkits" namespace."""
    return app.add_engine(Engine("bukkits", root=plugin_tree.root, namespace="bukkits"))


@pytest.fixture
def client(app):
    return TestClient(app)


def call_asgi(asgi_app, path="/", method="GET", root_path=""):
    """Call an ASGI app directly; returns the scope and the sent messages."""
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": root_path,
        "query_string": b"",
        "headers": [],
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
    messages = []

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        messages.append(message)

    asyncio.run(asgi_app(scope, receive, send))
    return scope, messages


@pytest.fixture
def asgi_call():
    return call_asgi
