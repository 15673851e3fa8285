"""
Peer-connection backends.
"""

from __future__ import annotations

from .peer import PeerConnection
from .webrtcbin import WebRTCBinPeer, WebRTCUnavailableError, gstreamer_available

__all__ = ["PeerConnection", "WebRTCBinPeer", "WebRTCUnavailableError", "gstreamer_available"]
