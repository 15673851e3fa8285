"""
Peer-connection capability consumed by the WHIP signalling layer.

The orchestrator only talks to this interface, which keeps the signalling
logic independent from the WebRTC engine (webrtcbin in production, in-memory
doubles in tests).
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from ..config import BundlePolicy
from ..sdp import SessionDescription

OfferCallback = Callable[[Optional[SessionDescription]], None]
NegotiationNeededCallback = Callable[[], None]
IceCandidateCallback = Callable[[int, str], None]


class PeerConnection:
    """
    Base class for peer-connection backends.

    Callbacks may be invoked from any thread owned by the backend.
    """

    def create_offer(self, callback: OfferCallback) -> None:
        """
        Start creating an offer.  ``callback`` receives the offer, or ``None``
        when the engine failed to produce one.
        """

        raise NotImplementedError

    def set_local_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def set_remote_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def set_stun_server(self, url: Optional[str]) -> None:
        """Replace the single STUN server, formatted ``stun://host:port``."""

        raise NotImplementedError

    def add_turn_server(self, url: str) -> bool:
        """Add a TURN/TURNS server.  Returns ``False`` when the engine refuses it."""

        raise NotImplementedError

    def set_bundle_policy(self, policy: BundlePolicy) -> None:
        raise NotImplementedError

    def connect_negotiation_needed(self, callback: NegotiationNeededCallback) -> None:
        raise NotImplementedError

    def connect_ice_candidate(self, callback: IceCandidateCallback) -> None:
        """Optional hook; backends without candidate events may ignore it."""

    def request_pad(self, name: Optional[str] = None) -> Any:
        """Hand out a media input for the engine.  The handle is opaque here."""

        raise NotImplementedError

    def release_pad(self, pad: Any) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release engine resources.  Default is a no-op."""


__all__ = [
    "IceCandidateCallback",
    "NegotiationNeededCallback",
    "OfferCallback",
    "PeerConnection",
]
