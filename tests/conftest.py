"""Shared test fixtures for pathrpc."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pathrpc.config import get_config, reset_config
from pathrpc.server import PathRegistry, mount_rpc
from fakes import RecordingTransport
from sample_app import manifest as sample_manifest


@pytest.fixture(autouse=True)
def _reset_global_config(monkeypatch):
    """Reset global config and clear pathrpc environment overrides for all tests."""
    for key in ("PATHRPC_BATCHING", "PATHRPC_MAX_BATCH_SIZE", "PATHRPC_DEBOUNCE_MS",
                "PATHRPC_MAX_URL_SIZE", "PATHRPC_MAX_RETRIES", "PATHRPC_API_PREFIX"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    """Return the default PathRpcConfig."""
    return get_config()


@pytest.fixture
def transport():
    """Return an echoing in-memory transport."""
    return RecordingTransport()


@pytest.fixture
def registry():
    """Return the registry built from the sample manifest."""
    return PathRegistry.build(sample_manifest)


@pytest.fixture
def app():
    """Return a FastAPI app serving the sample manifest."""
    app = FastAPI()
    mount_rpc(app, sample_manifest)
    return app


@pytest.fixture
def http_client(app):
    """Return a synchronous test client for the sample app."""
    with TestClient(app) as client:
        yield client
