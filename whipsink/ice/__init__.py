"""
ICE server discovery helpers.
"""

from __future__ import annotations

from .configurator import AppliedIceServers, apply_explicit_servers, apply_ice_servers
from .link_header import IceServer, IceServerKind, join_link_headers, parse_link_header

__all__ = [
    "AppliedIceServers",
    "IceServer",
    "IceServerKind",
    "apply_explicit_servers",
    "apply_ice_servers",
    "join_link_headers",
    "parse_link_header",
]
