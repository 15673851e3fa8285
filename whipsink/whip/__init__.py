"""
WHIP signalling: HTTP session and negotiation orchestration.
"""

from __future__ import annotations

from .negotiation import NegotiationOrchestrator
from .session import SessionState, WhipSession, resolve_resource_url

__all__ = [
    "NegotiationOrchestrator",
    "SessionState",
    "WhipSession",
    "resolve_resource_url",
]
