"""
Shared fixtures for onvif2mqtt tests.

SOAP exchanges go through ``FakeSession`` so no test touches the network.
"""

from __future__ import annotations

from typing import Callable, List

import pytest

from onvif2mqtt.config import CameraConfig, SnapshotConfig

from .support import FakeSession, FakeTimer, FakeTransport


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def timers() -> List[FakeTimer]:
    return []


@pytest.fixture
def timer_factory(timers: List[FakeTimer]) -> Callable[[float, Callable[[], None]], FakeTimer]:
    def _factory(interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        timers.append(timer)
        return timer

    return _factory


@pytest.fixture
def camera_config() -> CameraConfig:
    return CameraConfig(
        name="front-door",
        username="admin",
        password="secret",
        snapshot=SnapshotConfig(address="http://192.168.1.20/snapshot.jpg"),
    )
