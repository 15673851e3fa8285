"""
whipsink: WebRTC-HTTP Ingestion Protocol (WHIP) publishing client.

The package posts locally produced SDP offers to a WHIP endpoint, applies the
returned answer to a peer connection, discovers STUN/TURN servers advertised in
``Link`` headers and deletes the session resource on teardown.  The WebRTC
engine is consumed through :class:`whipsink.rtc.PeerConnection`; GStreamer's
``webrtcbin`` is the bundled implementation.
"""

from __future__ import annotations

from .config import BundlePolicy, RenegotiationPolicy, SessionConfig, build_config, load_config
from .errors import SignalingError, UnexpectedStatus, WhipError
from .publisher import WhipPublisher
from .sdp import SdpType, SessionDescription
from .whip import NegotiationOrchestrator, SessionState, WhipSession

__version__ = "0.1.0"

__all__ = [
    "BundlePolicy",
    "NegotiationOrchestrator",
    "RenegotiationPolicy",
    "SdpType",
    "SessionConfig",
    "SessionDescription",
    "SessionState",
    "SignalingError",
    "UnexpectedStatus",
    "WhipError",
    "WhipPublisher",
    "WhipSession",
    "build_config",
    "load_config",
]
