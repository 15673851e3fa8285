"""
Apply ICE servers to a peer connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..config import SessionConfig
from ..errors import IceServerRejected
from ..rtc.peer import PeerConnection
from .link_header import IceServer, IceServerKind

LOG = logging.getLogger(__name__)


@dataclass
class AppliedIceServers:
    """Outcome of :func:`apply_ice_servers`."""

    stun_server: Optional[str] = None
    turn_servers: List[str] = field(default_factory=list)
    rejected: List[IceServerRejected] = field(default_factory=list)

    @property
    def count(self) -> int:
        return int(self.stun_server is not None) + len(self.turn_servers)


def _set_stun_server(peer: PeerConnection, url: str) -> None:
    try:
        peer.set_stun_server(url)
    except Exception as exc:
        raise IceServerRejected(url) from exc


def _add_turn_server(peer: PeerConnection, url: str, label: str) -> None:
    try:
        accepted = peer.add_turn_server(url)
    except Exception as exc:
        raise IceServerRejected(label) from exc
    if not accepted:
        raise IceServerRejected(label)


def apply_ice_servers(servers: Iterable[IceServer], peer: PeerConnection) -> AppliedIceServers:
    """
    Push ``servers`` to ``peer``.

    STUN replaces whatever STUN server the peer had, TURN/TURNS servers are
    added on top of existing ones.  A refused TURN server is logged and
    recorded, and so is a STUN server the peer raises on; neither interrupts
    the remaining servers.
    """

    applied = AppliedIceServers()
    for server in servers:
        url = server.as_url()
        if server.kind is IceServerKind.STUN:
            LOG.debug("Setting STUN server %s", url)
            try:
                _set_stun_server(peer, url)
            except IceServerRejected as exc:
                LOG.error("Failed to set stun-server %s", url, exc_info=True)
                applied.rejected.append(exc)
            else:
                applied.stun_server = url
            continue

        label = server.redacted_url()
        LOG.debug("Adding %s server %s", server.kind.value.upper(), label)
        try:
            _add_turn_server(peer, url, label)
        except IceServerRejected as exc:
            LOG.error("Failed to add-turn-server %s", label, exc_info=exc.__cause__ is not None)
            applied.rejected.append(exc)
        else:
            applied.turn_servers.append(url)
    return applied


def apply_explicit_servers(config: SessionConfig, peer: PeerConnection) -> AppliedIceServers:
    """
    Apply the statically configured STUN/TURN servers and bundle policy.

    Link header values applied later take precedence over these.
    """

    applied = AppliedIceServers()
    peer.set_bundle_policy(config.bundle_policy)
    if config.stun_server:
        try:
            _set_stun_server(peer, config.stun_server)
        except IceServerRejected as exc:
            LOG.error("Configured stun-server was rejected by the peer connection", exc_info=True)
            applied.rejected.append(exc)
        else:
            applied.stun_server = config.stun_server
    if config.turn_server:
        try:
            _add_turn_server(peer, config.turn_server, config.turn_server)
        except IceServerRejected as exc:
            LOG.error("Configured turn-server was rejected by the peer connection")
            applied.rejected.append(exc)
        else:
            applied.turn_servers.append(config.turn_server)
    return applied


__all__ = ["AppliedIceServers", "apply_explicit_servers", "apply_ice_servers"]
