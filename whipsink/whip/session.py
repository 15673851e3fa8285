"""
WHIP HTTP session.

Owns the HTTP side of one publishing session: the optional ``OPTIONS``
preflight used to discover ICE servers, the ``POST`` of the SDP offer and the
``DELETE`` of the session resource on teardown.

State shared between callbacks (endpoint, resource URL, state, generation) is
guarded by a single lock that is never held across a network call: read state,
release, perform I/O, reacquire, commit.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

import httpx

from ..config import RenegotiationPolicy, SessionConfig
from ..errors import (
    MalformedLinkHeader,
    NegotiationInProgress,
    RenegotiationRejected,
    SessionTornDown,
    SignalingError,
    TransportError,
    UnexpectedStatus,
)
from ..ice import IceServer, apply_ice_servers, join_link_headers, parse_link_header
from ..rtc.peer import PeerConnection
from ..sdp import SessionDescription

LOG = logging.getLogger(__name__)

SDP_CONTENT_TYPE = "application/sdp"
OPTIONS_OK = frozenset({200, 204})
USER_AGENT = "whipsink/0.1"

AnswerCallback = Callable[[Optional[str], Optional[SignalingError]], None]


class SessionState(str, Enum):
    IDLE = "idle"
    OPTIONS_PENDING = "options-pending"
    OFFER_READY = "offer-ready"
    POSTING = "posting"
    NEGOTIATED = "negotiated"
    TORN_DOWN = "torn-down"


def resolve_resource_url(endpoint: str, location: str) -> str:
    """
    Resolve a ``Location`` header against the endpoint.

    Absolute URLs are returned unchanged, paths are joined onto the endpoint's
    origin.
    """

    return str(httpx.URL(endpoint).join(location.strip()))


class WhipSession:
    """
    HTTP lifecycle of one WHIP publishing session.

    Parameters
    ----------
    config:
        Validated session configuration.
    peer:
        Peer connection that receives ICE servers discovered via ``OPTIONS``.
    client:
        Optional pre-built :class:`httpx.Client`.  When omitted the session
        creates (and later closes) its own.
    """

    def __init__(
        self,
        config: SessionConfig,
        peer: PeerConnection,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config
        self._peer = peer
        self._lock = threading.RLock()
        self._endpoint = config.endpoint
        self._resource_url: Optional[str] = None
        self._state = SessionState.IDLE
        self._posting = False
        self._generation = 0
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(
            timeout=httpx.Timeout(config.timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []

    # ------------------------------------------------------------------ properties

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def endpoint(self) -> str:
        with self._lock:
            return self._endpoint

    @property
    def resource_url(self) -> Optional[str]:
        with self._lock:
            return self._resource_url

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def is_torn_down(self) -> bool:
        with self._lock:
            return self._state is SessionState.TORN_DOWN

    def set_endpoint(self, endpoint: str) -> bool:
        """
        Change the endpoint before the first request.  Returns ``False`` (and
        keeps the current endpoint) once the session has left ``idle``.
        """

        with self._lock:
            if self._state is not SessionState.IDLE or self._resource_url is not None:
                LOG.warning("Ignoring whip-endpoint change after session start")
                return False
            self._endpoint = self._config.with_overrides(endpoint=endpoint).endpoint
            return True

    # ------------------------------------------------------------------ helpers

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = dict(extra)
        if self._config.bearer_token:
            headers["Authorization"] = f"Bearer {self._config.bearer_token}"
        return headers

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    def _check_alive_locked(self) -> None:
        if self._state is SessionState.TORN_DOWN:
            raise SessionTornDown("session has been torn down")

    def _submit(self, fn: Callable[[], None]) -> Future:
        with self._lock:
            self._check_alive_locked()
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="whip-http")
            future = self._executor.submit(fn)
            self._pending = [item for item in self._pending if not item.done()]
            self._pending.append(future)
        return future

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and self._state is not SessionState.TORN_DOWN

    def _settle_locked(self) -> None:
        if self._state in (SessionState.OPTIONS_PENDING, SessionState.OFFER_READY):
            negotiated = self._resource_url is not None
            self._state = SessionState.NEGOTIATED if negotiated else SessionState.IDLE

    def can_negotiate(self) -> bool:
        """
        Whether a new offer could be POSTed right now.

        ``False`` once torn down, while a POST is in flight, or when a resource
        exists and the renegotiation policy is ``reject``.
        """

        with self._lock:
            if self._state is SessionState.TORN_DOWN or self._posting:
                return False
            if self._resource_url is not None:
                return self._config.renegotiation is not RenegotiationPolicy.REJECT
            return True

    def abandon_pending_offer(self) -> None:
        """Return to ``idle``/``negotiated`` after a cycle that never POSTed."""

        with self._lock:
            self._settle_locked()

    # ------------------------------------------------------------------ ICE discovery

    def fetch_ice_servers(self) -> List[IceServer]:
        """
        Issue ``OPTIONS`` against the endpoint and parse its ``Link`` headers.

        Raises :class:`UnexpectedStatus` for anything but 200/204 and
        :class:`TransportError` when the request could not be performed.
        """

        with self._lock:
            self._check_alive_locked()
            endpoint = self._endpoint

        response = self._request("OPTIONS", endpoint, headers=self._headers())
        if response.status_code not in OPTIONS_OK:
            raise UnexpectedStatus(response.status_code, "OPTIONS", response.reason_phrase)

        link_values = response.headers.get_list("link")
        if not link_values:
            LOG.info("No Link header in OPTIONS response; keeping configured ICE servers")
            return []
        link_header = join_link_headers(link_values)
        LOG.debug("Link headers: %s", link_header)
        try:
            return parse_link_header(link_header, strict=True)
        except MalformedLinkHeader as exc:
            LOG.warning("Ignoring Link header: %s", exc)
            return []

    def _discover(
        self,
        generation: int,
        on_ready: Callable[[], None],
        on_failed: Optional[Callable[[SignalingError], None]],
    ) -> None:
        try:
            servers = self.fetch_ice_servers()
        except SignalingError as exc:
            with self._lock:
                self._settle_locked()
            if not self._is_current(generation):
                LOG.debug("Dropping OPTIONS failure for a torn down session")
                exc = SessionTornDown("session was torn down during ICE server discovery")
            else:
                LOG.error("ICE server discovery failed: %s", exc)
            if on_failed is not None:
                on_failed(exc)
            return

        if not self._is_current(generation):
            # Only the caller's bookkeeping runs; the peer is left untouched.
            LOG.debug("Dropping OPTIONS response for a torn down session")
            if on_failed is not None:
                on_failed(SessionTornDown("session was torn down during ICE server discovery"))
            return
        if servers:
            LOG.info("Updating ice servers from OPTIONS response")
            try:
                applied = apply_ice_servers(servers, self._peer)
            except Exception:
                LOG.exception("Failed to apply ICE servers from OPTIONS response")
            else:
                LOG.debug(
                    "Applied %d ICE server(s), %d rejected",
                    applied.count,
                    len(applied.rejected),
                )
        with self._lock:
            if self._state is SessionState.OPTIONS_PENDING:
                self._state = SessionState.OFFER_READY
        on_ready()

    def discover_ice_servers(
        self,
        on_ready: Callable[[], None],
        *,
        asynchronous: bool = True,
        on_failed: Optional[Callable[[SignalingError], None]] = None,
    ) -> Optional[Future]:
        """
        Discover ICE servers with ``OPTIONS`` and then call ``on_ready``.

        ``on_ready`` is only called after a 200/204 response; failures are
        logged and reported to ``on_failed``.  In asynchronous mode the request
        runs on the session worker thread and the returned future completes
        once the callbacks have run.  If the session is torn down in the
        meantime ``on_ready`` is dropped and ``on_failed`` receives
        :class:`SessionTornDown`, including when the queued request is
        cancelled before it starts.
        """

        with self._lock:
            self._check_alive_locked()
            generation = self._generation
            if self._state in (SessionState.IDLE, SessionState.NEGOTIATED, SessionState.OFFER_READY):
                self._state = SessionState.OPTIONS_PENDING

        LOG.debug("Using link headers to get ice-servers")
        if not asynchronous:
            self._discover(generation, on_ready, on_failed)
            return None

        future = self._submit(lambda: self._discover(generation, on_ready, on_failed))
        if on_failed is not None:

            def _on_cancelled(done: Future) -> None:
                if done.cancelled():
                    on_failed(SessionTornDown("ICE server discovery was cancelled by teardown"))

            future.add_done_callback(_on_cancelled)
        return future

    # ------------------------------------------------------------------ offer / answer

    def _begin_post(self) -> tuple:
        with self._lock:
            self._check_alive_locked()
            if self._posting:
                raise NegotiationInProgress("an offer is already being sent")
            previous_resource = self._resource_url
            if previous_resource is not None and self._config.renegotiation is RenegotiationPolicy.REJECT:
                raise RenegotiationRejected(
                    f"session already owns resource {previous_resource}; renegotiation is disabled"
                )
            self._posting = True
            previous_state = self._state
            self._state = SessionState.POSTING
            return self._endpoint, previous_resource, previous_state, self._generation

    def _replace_resource(self, resource_url: str) -> None:
        LOG.info("Deleting previous WHIP resource %s before renegotiating", resource_url)
        try:
            response = self._request("DELETE", resource_url, headers=self._headers())
        except TransportError as exc:
            LOG.warning("DELETE of previous resource failed: %s", exc)
            return
        LOG.debug("DELETE %s returned %d", resource_url, response.status_code)

    def send_offer(self, offer: Union[SessionDescription, str]) -> str:
        """
        POST ``offer`` to the endpoint and return the SDP answer text.

        On ``201 Created`` the ``Location`` header, when present, is resolved
        against the endpoint and stored as the session resource URL.
        """

        endpoint, previous_resource, previous_state, generation = self._begin_post()
        committed = False
        try:
            if isinstance(offer, SessionDescription):
                body = offer.as_text()
            else:
                body = str(offer)
            LOG.debug("Sending offer to %s\n%s", endpoint, body)

            if previous_resource is not None:
                self._replace_resource(previous_resource)
                with self._lock:
                    if self._resource_url == previous_resource:
                        self._resource_url = None

            response = self._request(
                "POST",
                endpoint,
                content=body.encode("utf-8"),
                headers=self._headers(**{"Content-Type": SDP_CONTENT_TYPE}),
            )
            LOG.debug("POST status %d\n%s", response.status_code, response.text)
            if response.status_code != 201:
                raise UnexpectedStatus(response.status_code, "POST", response.reason_phrase)

            location = response.headers.get("location")
            resource_url = resolve_resource_url(endpoint, location) if location else None
            with self._lock:
                if generation != self._generation or self._state is SessionState.TORN_DOWN:
                    # Torn down while the POST was in flight: nobody will DELETE it.
                    LOG.warning("Session torn down during POST; resource %s left on server", resource_url)
                    raise SessionTornDown("session was torn down while the offer was in flight")
                if resource_url is not None:
                    self._resource_url = resource_url
                self._state = SessionState.NEGOTIATED
                committed = True
            if resource_url is None:
                LOG.warning("201 response without Location header; teardown will not send DELETE")
            else:
                LOG.info("WHIP resource url is %s", resource_url)
            return response.text
        finally:
            with self._lock:
                self._posting = False
                if not committed and self._state is SessionState.POSTING:
                    self._state = previous_state

    def send_offer_async(self, offer: Union[SessionDescription, str], callback: AnswerCallback) -> Future:
        """
        Queue :meth:`send_offer` on the worker thread.

        ``callback(answer, error)`` runs on the worker thread unless the session
        was torn down first.
        """

        with self._lock:
            generation = self._generation

        def _run() -> None:
            try:
                answer = self.send_offer(offer)
            except SignalingError as exc:
                if self._is_current(generation):
                    callback(None, exc)
                return
            except Exception as exc:
                LOG.exception("Sending offer failed unexpectedly")
                if self._is_current(generation):
                    error = SignalingError(f"sending offer failed: {exc}")
                    error.__cause__ = exc
                    callback(None, error)
                return
            if self._is_current(generation):
                callback(answer, None)

        return self._submit(_run)

    # ------------------------------------------------------------------ teardown

    def teardown(self) -> Optional[int]:
        """
        Tear the session down, deleting the server resource once.

        Returns the DELETE status code, or ``None`` when no DELETE was sent
        (no resource, request failure, or an earlier teardown).
        """

        with self._lock:
            if self._state is SessionState.TORN_DOWN:
                return None
            self._state = SessionState.TORN_DOWN
            self._generation += 1
            resource_url = self._resource_url
            self._resource_url = None
            executor = self._executor
            self._executor = None
            pending = list(self._pending)
            self._pending.clear()

        for future in pending:
            future.cancel()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

        status: Optional[int] = None
        try:
            if resource_url is not None:
                try:
                    response = self._request("DELETE", resource_url, headers=self._headers())
                except TransportError as exc:
                    LOG.warning("DELETE %s failed: %s", resource_url, exc)
                else:
                    status = response.status_code
                    LOG.info("DELETE %s returned %d", resource_url, status)
            else:
                LOG.debug("No WHIP resource to delete")
        finally:
            if self._owns_client:
                self._client.close()
        return status

    def close(self) -> None:
        self.teardown()

    def __enter__(self) -> "WhipSession":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.teardown()


__all__ = ["SessionState", "WhipSession", "resolve_resource_url"]
