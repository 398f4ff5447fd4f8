"""
Trencher — Test Configuration (conftest.py)
=============================================

What:  Shared pytest fixtures for the whole suite.
How:   pytest discovers this file automatically; fixtures are function-scoped.

Fixtures:
    ├── upload_dir:          Temporary upload destination
    ├── dispatcher:          In-memory dispatcher recording registrations
    ├── app:                 FastAPI app with Trencher installed
    ├── http_client:         HTTPX AsyncClient talking to ``app`` in-process
    ├── sample_image_bytes:  Minimal PNG bytes
    └── png_data_uri:        The same PNG as a base64 data URI
"""

import base64
import os
import tempfile

# Settings are read at import time; configure the environment first.
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["UPLOAD_FOLDER"] = tempfile.mkdtemp(prefix="trencher_test_")
os.environ.pop("API_BASE_URL", None)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from trencher.app import create_app  # noqa: E402

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class RecordingDispatcher:
    """Dispatcher that only records what would be registered."""

    def __init__(self):
        self.routes = []

    def register(self, verb, path, chain):
        self.routes.append((verb, path, chain))

    def chain_for(self, verb, path):
        for registered_verb, registered_path, chain in self.routes:
            if (registered_verb, registered_path) == (verb, path):
                return chain
        raise KeyError(f"{verb} {path} was not registered")


@pytest.fixture
def upload_dir(tmp_path):
    """A destination folder that does not exist yet (the upload stage creates it)."""
    return tmp_path / "uploads" / "nested"


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def app():
    return create_app(upload_folders=[])


@pytest_asyncio.fixture
async def http_client(app):
    """
    HTTPX AsyncClient routed straight into ``app`` (no server needed).

    Routes may be registered on ``app`` after the client is created.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_image_bytes():
    return PNG_BYTES


@pytest.fixture
def png_data_uri():
    return "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def pdf_data_uri():
    return "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4\n%%EOF").decode()
