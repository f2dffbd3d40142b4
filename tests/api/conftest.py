"""Shared pytest fixtures for API tests."""

import asyncio
import threading
import time
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from mediascan.clients.ffprobe_client import FFProbeClient, ProbeFormat
from mediascan.common.config import Config
from mediascan.core.exceptions import FFProbeExecutionError
from mediascan.web.main import create_app


@pytest.fixture
def api_config(test_config: Config, media_tree: dict) -> Config:
    """Test configuration pointed at the fixture media tree."""
    return test_config.model_copy(update={"video_directories": media_tree["roots"]})


@pytest.fixture
def probe_gate() -> threading.Event:
    """
    Gate for the fake ffprobe. Clear it to hold a scan in the metadata
    phase; set it again to let the scan finish.
    """
    gate = threading.Event()
    gate.set()
    return gate


@pytest.fixture
def test_app(
    api_config: Config,
    probe_gate: threading.Event,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """
    Provide a FastAPI TestClient backed by a fresh service.

    The service is built inside the app lifespan (so it lives on the
    client's event loop) with ffprobe replaced by an in-process fake.
    """

    class FakeProbe(FFProbeClient):
        async def probe_format(self, path):
            while not probe_gate.is_set():
                await asyncio.sleep(0.01)
            if path.name == "corrupt.mkv":
                raise FFProbeExecutionError("ffprobe failed with exit code 1", returncode=1)
            return ProbeFormat(duration=95.0, size=path.stat().st_size)

    monkeypatch.setattr(
        FFProbeClient,
        "from_config",
        classmethod(lambda cls, config: FakeProbe(config)),
    )

    app = create_app(config=api_config)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
        probe_gate.set()


@pytest.fixture
def wait_for_idle() -> Callable[[TestClient], dict]:
    """Poll /scan/status until no scan is running and return the last status."""

    def _wait(client: TestClient, timeout: float = 10.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            data = client.get("/scan/status").json()
            if not data["isUpdating"]:
                return data
            if time.monotonic() > deadline:
                raise AssertionError(f"scan still running: {data}")
            time.sleep(0.02)

    return _wait
