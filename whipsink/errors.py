"""
Error hierarchy shared by the signalling and ICE layers.
"""

from __future__ import annotations

from typing import Optional


class WhipError(RuntimeError):
    """Base class for whipsink errors."""


class ConfigurationError(WhipError):
    """Raised when a session configuration cannot be used."""


class SignalingError(WhipError):
    """Base class for failures that abort a negotiation cycle."""


class TransportError(SignalingError):
    """Raised when the HTTP exchange itself failed (connect, timeout, ...)."""


class UnexpectedStatus(SignalingError):
    """Raised when the WHIP server answers with a status we cannot use."""

    def __init__(self, status_code: int, method: str = "POST", detail: Optional[str] = None) -> None:
        self.status_code = int(status_code)
        self.method = method
        self.detail = detail
        message = f"{method} returned unexpected status {self.status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SdpParseError(SignalingError):
    """Raised when a body is not valid SDP text."""


class NegotiationInProgress(SignalingError):
    """Raised when a second POST is attempted while one is outstanding."""


class RenegotiationRejected(SignalingError):
    """Raised when an offer is sent for a session that already owns a resource."""


class SessionTornDown(SignalingError):
    """Raised when a torn down session is asked to talk to the server."""


class IceServerError(WhipError):
    """Base class for ICE server configuration problems. Never fatal."""


class MalformedLinkHeader(IceServerError):
    """Raised when a Link header yields no usable ICE server."""


class IceServerRejected(IceServerError):
    """Raised when the peer connection refuses a TURN/TURNS server."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"peer connection rejected ICE server {url}")


__all__ = [
    "ConfigurationError",
    "IceServerError",
    "IceServerRejected",
    "MalformedLinkHeader",
    "NegotiationInProgress",
    "RenegotiationRejected",
    "SdpParseError",
    "SessionTornDown",
    "SignalingError",
    "TransportError",
    "UnexpectedStatus",
    "WhipError",
]
