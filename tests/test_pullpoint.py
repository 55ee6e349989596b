from __future__ import annotations

import threading
import time

import pytest
import requests

from onvif2mqtt.events import CanonicalEvent
from onvif2mqtt.onvif.pullpoint import (
    PullEventSource,
    PullPointHandle,
    PullPointSubscription,
    create_pull_point_subscription,
    start_pull,
)
from onvif2mqtt.onvif.soap import OnvifStartupError, SoapClient

from .support import CAPABILITIES_RESPONSE, PULL_MESSAGES_RESPONSE, PULL_POINT_RESPONSE, FakeSession

SUBSCRIPTION = "http://192.168.1.20/onvif/Subscription?Idx=0"


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _camera_session(pull_reply=PULL_MESSAGES_RESPONSE) -> FakeSession:
    return FakeSession(
        {
            "device_service": CAPABILITIES_RESPONSE,
            "Subscription": pull_reply,
            "Events": PULL_POINT_RESPONSE,
        }
    )


def test_create_pull_point_subscription_reads_reference_address():
    session = FakeSession({"Events": PULL_POINT_RESPONSE})
    address = create_pull_point_subscription("http://192.168.1.20/onvif/Events", SoapClient(session=session))
    assert address == SUBSCRIPTION
    assert "CreatePullPointSubscription" in session.bodies()[0]


def test_create_pull_point_subscription_without_reference():
    session = FakeSession({"Events": "<Envelope><Body><Fault>nope</Fault></Body></Envelope>"})
    assert create_pull_point_subscription("http://cam/Events", SoapClient(session=session)) is None


def test_poll_once_requests_messages_and_dispatches(camera_config):
    session = _camera_session()
    received = []
    handle = PullPointHandle(
        camera_config,
        PullPointSubscription("http://192.168.1.20/onvif/Events", SUBSCRIPTION),
        received.append,
        SoapClient(session=session),
    )

    assert handle.poll_once() == [CanonicalEvent("motion", True)]
    assert received == [CanonicalEvent("motion", True)]
    body = session.bodies()[0]
    assert "<tev:Timeout>PT2S</tev:Timeout>" in body
    assert "<tev:MessageLimit>10</tev:MessageLimit>" in body


def test_poll_once_isolates_handler_failures(camera_config):
    session = _camera_session(
        PULL_MESSAGES_RESPONSE.replace("</tev:PullMessagesResponse>", "<x>vehicle true</x></tev:PullMessagesResponse>")
    )
    received = []

    def handler(event):
        if event.type == "motion":
            raise RuntimeError("boom")
        received.append(event)

    handle = PullPointHandle(
        camera_config, PullPointSubscription("x", SUBSCRIPTION), handler, SoapClient(session=session)
    )
    handle.poll_once()
    assert received == [CanonicalEvent("vehicle", True)]


def test_start_pull_fails_without_events_xaddr(camera_config):
    session = FakeSession({"device_service": requests.ConnectionError("down")})
    with pytest.raises(OnvifStartupError):
        start_pull(camera_config, lambda event: None, client=SoapClient(session=session))


def test_start_pull_fails_without_subscription(camera_config):
    session = FakeSession({"device_service": CAPABILITIES_RESPONSE, "Events": "<Envelope/>"})
    with pytest.raises(OnvifStartupError):
        start_pull(camera_config, lambda event: None, client=SoapClient(session=session))


def test_pull_loop_survives_transient_failure(camera_config):
    calls = {"count": 0}

    def pull_reply(url, kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise requests.ConnectionError("flaky network")
        return PULL_MESSAGES_RESPONSE

    session = _camera_session(pull_reply)
    received = []
    lock = threading.Lock()

    def on_event(event):
        with lock:
            received.append(event)

    handle = start_pull(camera_config, on_event, client=SoapClient(session=session), interval=0.01)
    try:
        assert _wait_for(lambda: len(received) >= 3)
    finally:
        handle.stop()
        handle.join(timeout=2)

    assert not handle.running
    assert calls["count"] >= 4
    assert all(event == CanonicalEvent("motion", True) for event in received)
    assert handle.subscription.subscription_address == SUBSCRIPTION


def test_pull_loop_survives_malformed_response(camera_config):
    replies = iter(["<<not xml"] + [PULL_MESSAGES_RESPONSE] * 1000)
    session = _camera_session(lambda url, kwargs: next(replies))
    received = []

    handle = start_pull(camera_config, received.append, client=SoapClient(session=session), interval=0.01)
    try:
        assert _wait_for(lambda: len(received) >= 1)
    finally:
        handle.stop()
        handle.join(timeout=2)


def test_pull_event_source_uses_client_factory(camera_config):
    session = _camera_session()
    source = PullEventSource(client_factory=lambda camera: SoapClient(session=session), interval=0.01)
    received = []

    handle = source.start(camera_config, received.append)
    try:
        assert _wait_for(lambda: len(received) >= 1)
    finally:
        handle.stop()
        handle.join(timeout=2)
    assert source.mode == "pull"
