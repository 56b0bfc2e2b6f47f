"""Shared test fixtures for all test modules."""

import os
from typing import Any, Dict, List

import pytest

from treebeard import DeliveryError, TreebeardCore


class RecordingService:
    """Stands in for IngestService; fails the first ``failures`` attempts."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.attempts = 0
        self.payloads: List[Dict[str, Any]] = []

    async def send_batch(self, payload: Dict[str, Any]) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise DeliveryError("ingestion unavailable", status_code=503)
        self.payloads.append(payload)

    @property
    def logs(self) -> List[Dict[str, Any]]:
        return [entry for payload in self.payloads for entry in payload["logs"]]

    @property
    def objects(self) -> List[Dict[str, Any]]:
        return [obj for payload in self.payloads for obj in payload["objects"]]


@pytest.fixture(autouse=True)
def isolated_core(monkeypatch):
    """Start every test without a process-wide instance or TREEBEARD_* variables."""
    for key in list(os.environ):
        if key.startswith("TREEBEARD_"):
            monkeypatch.delenv(key)
    TreebeardCore.reset()
    yield
    TreebeardCore.reset()


@pytest.fixture
def service() -> RecordingService:
    return RecordingService()


@pytest.fixture
def make_core(service):
    """Factory fixture initializing the process-wide core with test defaults.

    The periodic flush is pushed far out so tests control every flush.
    """

    def _make(service_override=None, **overrides: Any) -> TreebeardCore:
        options: Dict[str, Any] = {
            "project_name": "test-project",
            "api_key": "test-key",
            "batch_size": 100,
            "flush_interval": 60.0,
            "capture_unhandled": False,
            "retry_backoff": 0.0,
        }
        options.update(overrides)
        return TreebeardCore.init(options, service=service_override or service)

    return _make
