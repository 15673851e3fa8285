"""
Negotiation orchestration.

Bridges the peer connection's ``negotiation-needed`` event to the WHIP HTTP
exchange.  One cycle runs ``[OPTIONS] -> create offer -> set local description
-> POST -> set remote description`` strictly in that order; cycles never
overlap.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..errors import SessionTornDown, SignalingError
from ..rtc.peer import PeerConnection
from ..sdp import SdpType, SessionDescription
from .session import WhipSession

LOG = logging.getLogger(__name__)


class NegotiationOrchestrator:
    """
    Drive offer/answer cycles for a :class:`WhipSession`.

    A trigger that arrives while a cycle is running is dropped; the running
    cycle already carries the peer's latest local state to the server.
    """

    def __init__(self, session: WhipSession, peer: PeerConnection) -> None:
        self._session = session
        self._peer = peer
        self._lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._active = False
        self._attached = False
        self.cycles_started = 0
        self.cycles_completed = 0
        self.last_error: Optional[BaseException] = None

    @property
    def session(self) -> WhipSession:
        return self._session

    @property
    def is_negotiating(self) -> bool:
        with self._lock:
            return self._active

    def attach(self) -> None:
        """Subscribe to the peer connection events."""

        with self._lock:
            if self._attached:
                return
            self._attached = True
        self._peer.connect_negotiation_needed(self.handle_negotiation_needed)
        self._peer.connect_ice_candidate(self._on_ice_candidate)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is running.  Returns ``False`` on timeout."""

        return self._idle.wait(timeout)

    # ------------------------------------------------------------------ cycle

    def handle_negotiation_needed(self) -> bool:
        """
        Start a negotiation cycle.  Returns ``False`` when the trigger was
        dropped: a cycle is already running, the session is torn down, or it
        already owns a resource and renegotiation is rejected.  The peer is
        not touched in that case.
        """

        if self._session.is_torn_down:
            LOG.debug("Ignoring negotiation-needed on a torn down session")
            return False
        with self._lock:
            if self._active:
                LOG.info("Negotiation already in progress; dropping negotiation-needed")
                return False
            if not self._session.can_negotiate():
                LOG.info("Renegotiation disabled; dropping negotiation-needed")
                return False
            self._active = True
            self._idle.clear()
            self.cycles_started += 1
            cycle = self.cycles_started

        LOG.debug("Starting negotiation cycle %d", cycle)
        config = self._session.config
        try:
            if config.use_link_headers:
                self._session.discover_ice_servers(
                    self._request_offer,
                    asynchronous=config.async_discovery,
                    on_failed=self._abort,
                )
            else:
                self._request_offer()
        except SignalingError as exc:
            self._abort(exc)
        return True

    def _request_offer(self) -> None:
        try:
            self._peer.create_offer(self._on_offer_created)
        except Exception as exc:
            LOG.exception("create-offer failed")
            self._finish(exc)

    def _on_offer_created(self, offer: Optional[SessionDescription]) -> None:
        try:
            self._exchange(offer)
        except Exception as exc:
            LOG.exception("Negotiation failed unexpectedly")
            self._finish(exc)

    def _exchange(self, offer: Optional[SessionDescription]) -> None:
        if offer is None:
            LOG.error("Peer connection did not produce an offer")
            self._finish(SignalingError("offer creation failed"))
            return
        if self._session.is_torn_down:
            LOG.debug("Offer created after teardown; dropping it")
            self._finish(None)
            return

        self._peer.set_local_description(offer)
        try:
            answer_text = self._session.send_offer(offer)
            answer = SessionDescription.parse(answer_text, SdpType.ANSWER)
        except SignalingError as exc:
            self._abort(exc)
            return

        if self._session.is_torn_down:
            LOG.debug("Answer received after teardown; not applying it")
            self._finish(None)
            return
        self._peer.set_remote_description(answer)
        LOG.info("Negotiation complete; remote description applied")
        with self._lock:
            self.cycles_completed += 1
        self._finish(None)

    def _abort(self, error: BaseException) -> None:
        if isinstance(error, SessionTornDown):
            LOG.debug("Negotiation ended by teardown: %s", error)
        else:
            LOG.error("Negotiation aborted: %s", error)
        self._finish(error)

    def _finish(self, error: Optional[BaseException]) -> None:
        self._session.abandon_pending_offer()
        with self._lock:
            self.last_error = error
            self._active = False
            self._idle.set()

    def _on_ice_candidate(self, mline_index: int, candidate: str) -> None:
        # Trickle ICE is not sent to the server; candidates travel in the offer.
        LOG.debug("%d : %s", mline_index, candidate)


__all__ = ["NegotiationOrchestrator"]
