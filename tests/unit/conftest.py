"""Fixtures specific to unit tests."""

from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from mediascan.clients.ffprobe_client import FFProbeClient, ProbeFormat
from mediascan.common.config import ScanSettings
from mediascan.core.exceptions import FFProbeExecutionError
from mediascan.scan.resources import ResourceMonitor


class FakeMonitor(ResourceMonitor):
    """Resource monitor with fixed memory and CPU readings."""

    def __init__(self, settings: ScanSettings, memory_mb: float = 100.0):
        super().__init__(
            settings_provider=lambda: self.current_settings,
            memory_sampler=lambda: self.memory_mb,
            cpu_sampler=lambda: 0.0,
        )
        self.current_settings = settings
        self.memory_mb = memory_mb


@pytest.fixture
def monitor(scan_settings: ScanSettings) -> FakeMonitor:
    return FakeMonitor(scan_settings)


def make_probe(duration: float = 120.4, fail_for: Optional[set] = None) -> FFProbeClient:
    """FFProbeClient whose probe_format is mocked; paths named in ``fail_for`` fail."""
    fail_for = fail_for or set()
    client = FFProbeClient()

    async def probe_format(path: Path) -> ProbeFormat:
        if str(path) in fail_for or path.name in fail_for:
            raise FFProbeExecutionError("ffprobe failed with exit code 1", returncode=1)
        return ProbeFormat(duration=duration, size=path.stat().st_size)

    client.probe_format = AsyncMock(side_effect=probe_format)
    return client


@pytest.fixture
def probe() -> FFProbeClient:
    return make_probe()


@pytest.fixture
def probe_factory():
    """Build mocked probe clients: ``probe_factory(duration=..., fail_for={...})``."""
    return make_probe


@pytest.fixture
def monitor_factory():
    return FakeMonitor
