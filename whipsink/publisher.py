"""
High level WHIP publisher.

Wires a :class:`~whipsink.config.SessionConfig`, a peer connection, the HTTP
session and the negotiation orchestrator together.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .config import SessionConfig
from .ice import apply_explicit_servers
from .rtc.peer import PeerConnection
from .whip import NegotiationOrchestrator, SessionState, WhipSession

LOG = logging.getLogger(__name__)


class WhipPublisher:
    """
    One publishing session.

    ``start()`` applies the explicit ICE configuration and subscribes to the
    peer's negotiation events; ``stop()`` tears the WHIP resource down.
    """

    def __init__(
        self,
        config: SessionConfig,
        peer: PeerConnection,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self.peer = peer
        self.session = WhipSession(config, peer, client=client)
        self.orchestrator = NegotiationOrchestrator(self.session, peer)
        self._started = False

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def resource_url(self) -> Optional[str]:
        return self.session.resource_url

    def start(self) -> None:
        if self._started:
            return
        LOG.info("Publishing to WHIP endpoint %s", self.session.endpoint)
        apply_explicit_servers(self.config, self.peer)
        self.orchestrator.attach()
        self._started = True

    def request_pad(self, name: Optional[str] = None) -> Any:
        return self.peer.request_pad(name)

    def release_pad(self, pad: Any) -> None:
        self.peer.release_pad(pad)

    def stop(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Tear the session down.  Waits up to ``timeout`` seconds for a running
        negotiation cycle first; returns the DELETE status, if one was sent.
        """

        if timeout and not self.orchestrator.wait_idle(timeout):
            LOG.warning("Negotiation still running after %.1fs; tearing down anyway", timeout)
        status = self.session.teardown()
        try:
            self.peer.close()
        except Exception:  # pragma: no cover
            LOG.exception("Failed to close peer connection cleanly.")
        self._started = False
        return status

    def __enter__(self) -> "WhipPublisher":
        self.start()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.stop()


__all__ = ["WhipPublisher"]
