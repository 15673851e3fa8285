from __future__ import annotations

import threading
from typing import Callable, List, Optional

import httpx
import pytest

from whipsink.config import BundlePolicy, SessionConfig, build_config
from whipsink.rtc.peer import PeerConnection
from whipsink.sdp import SdpType, SessionDescription

ENDPOINT = "http://whip.example.com:7080/whip/endpoint/abc123"
ORIGIN = "http://whip.example.com:7080"

OFFER_SDP = (
    "v=0\r\n"
    "o=- 4215775240449105457 2 IN IP4 127.0.0.1\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE video0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:video0\r\n"
    "a=sendonly\r\n"
    "a=rtpmap:96 VP8/90000\r\n"
)

ANSWER_SDP = (
    "v=0\r\n"
    "o=- 1657793490019 1 IN IP4 127.0.0.1\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE video0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:video0\r\n"
    "a=recvonly\r\n"
    "a=rtpmap:96 VP8/90000\r\n"
)


class FakePeer(PeerConnection):
    """In-memory peer connection recording every call in order."""

    def __init__(self, offer_sdp: Optional[str] = OFFER_SDP, accept_turn: bool = True) -> None:
        self.offer_sdp = offer_sdp
        self.accept_turn = accept_turn
        self.calls: List[str] = []
        self.stun_server: Optional[str] = None
        self.turn_servers: List[str] = []
        self.bundle_policy: Optional[BundlePolicy] = None
        self.local_description: Optional[SessionDescription] = None
        self.remote_description: Optional[SessionDescription] = None
        self.negotiation_needed: Optional[Callable[[], None]] = None
        self.ice_candidate: Optional[Callable[[int, str], None]] = None
        self.pads: List[str] = []
        self.closed = False
        self.remote_set = threading.Event()

    def create_offer(self, callback) -> None:
        self.calls.append("create_offer")
        if self.offer_sdp is None:
            callback(None)
            return
        callback(SessionDescription(type=SdpType.OFFER, sdp=self.offer_sdp))

    def set_local_description(self, description: SessionDescription) -> None:
        self.calls.append("set_local_description")
        self.local_description = description

    def set_remote_description(self, description: SessionDescription) -> None:
        self.calls.append("set_remote_description")
        self.remote_description = description
        self.remote_set.set()

    def set_stun_server(self, url: Optional[str]) -> None:
        self.calls.append("set_stun_server")
        self.stun_server = url

    def add_turn_server(self, url: str) -> bool:
        self.calls.append("add_turn_server")
        if not self.accept_turn:
            return False
        self.turn_servers.append(url)
        return True

    def set_bundle_policy(self, policy: BundlePolicy) -> None:
        self.bundle_policy = policy

    def connect_negotiation_needed(self, callback) -> None:
        self.negotiation_needed = callback

    def connect_ice_candidate(self, callback) -> None:
        self.ice_candidate = callback

    def request_pad(self, name: Optional[str] = None) -> str:
        pad = name or f"sink_{len(self.pads)}"
        self.pads.append(pad)
        return pad

    def release_pad(self, pad) -> None:
        self.pads.remove(pad)

    def close(self) -> None:
        self.closed = True

    def fire_negotiation_needed(self) -> None:
        assert self.negotiation_needed is not None, "orchestrator not attached"
        self.negotiation_needed()


class FakeWhipServer:
    """Scriptable WHIP endpoint served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.options_status = 204
        self.link_headers: List[str] = []
        self.post_status = 201
        self.answer = ANSWER_SDP
        self.location: Optional[str] = "/resource/abc"
        self.delete_status = 200
        self.fail_with: Optional[Exception] = None
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.method == "OPTIONS":
            return httpx.Response(
                self.options_status,
                headers=[("Link", value) for value in self.link_headers],
            )
        if request.method == "POST":
            if self.post_status != 201:
                return httpx.Response(self.post_status, text="no such endpoint")
            headers = {"Content-Type": "application/sdp"}
            if self.location:
                headers["Location"] = self.location
            return httpx.Response(201, headers=headers, text=self.answer)
        if request.method == "DELETE":
            return httpx.Response(self.delete_status)
        return httpx.Response(405)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=True)

    def methods(self) -> List[str]:
        return [request.method for request in self.requests]


@pytest.fixture
def peer() -> FakePeer:
    return FakePeer()


@pytest.fixture
def whip_server() -> FakeWhipServer:
    return FakeWhipServer()


@pytest.fixture
def config() -> SessionConfig:
    return build_config(endpoint=ENDPOINT, use_link_headers=False)
