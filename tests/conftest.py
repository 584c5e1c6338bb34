"""Shared fixtures for extragrid tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from extragrid.client import GridClient
from extragrid.transport import LocalFileTransport
from tests.fakes import GOLDEN_DIR, FakeClock


@pytest.fixture
def golden_path() -> Path:
    return GOLDEN_DIR / "drive.json"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(golden_path: Path) -> LocalFileTransport:
    return LocalFileTransport(golden_path)


@pytest.fixture
def client(transport: LocalFileTransport, clock: FakeClock) -> GridClient:
    return GridClient(transport, clock=clock)
