"""
Session configuration.

A :class:`SessionConfig` is built and validated once before a session starts.
Keys accept the element property spelling (``whip-endpoint``), snake case and
a few short aliases so the same YAML profile works for the CLI and for code.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class BundlePolicy(str, Enum):
    """Bundle policies understood by webrtcbin, in its enum order."""

    NONE = "none"
    BALANCED = "balanced"
    MAX_COMPAT = "max-compat"
    MAX_BUNDLE = "max-bundle"

    @property
    def gst_value(self) -> int:
        return list(BundlePolicy).index(self)


class RenegotiationPolicy(str, Enum):
    """What to do when an offer is sent while a resource is still live."""

    REJECT = "reject"
    REPLACE = "replace"


class SessionConfig(BaseModel):
    endpoint: str = Field(
        validation_alias=AliasChoices("endpoint", "whip_endpoint", "whip-endpoint", "url"),
    )
    stun_server: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("stun_server", "stun-server", "stun"),
    )
    turn_server: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("turn_server", "turn-server", "turn"),
    )
    bundle_policy: BundlePolicy = Field(
        default=BundlePolicy.NONE,
        validation_alias=AliasChoices("bundle_policy", "bundle-policy"),
    )
    use_link_headers: bool = Field(
        default=True,
        validation_alias=AliasChoices("use_link_headers", "use-link-headers"),
    )
    async_discovery: bool = Field(
        default=True,
        validation_alias=AliasChoices("async_discovery", "async-discovery"),
    )
    timeout: float = DEFAULT_TIMEOUT_S
    bearer_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("bearer_token", "bearer-token", "token"),
    )
    renegotiation: RenegotiationPolicy = RenegotiationPolicy.REJECT

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    @field_validator("endpoint", mode="before")
    @classmethod
    def _validate_endpoint(cls, value: object) -> str:
        endpoint = str(value or "").strip()
        if not endpoint:
            raise ValueError("whip-endpoint is required")
        try:
            url = httpx.URL(endpoint)
        except Exception:
            raise ValueError(f"invalid whip-endpoint {endpoint!r}") from None
        if url.scheme not in {"http", "https"} or not url.host:
            raise ValueError(f"whip-endpoint must be an absolute http(s) URL, got {endpoint!r}")
        return endpoint

    @field_validator("stun_server", "turn_server", "bearer_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("bundle_policy", mode="before")
    @classmethod
    def _coerce_bundle_policy(cls, value: object) -> object:
        # webrtcbin exposes the policy as an enum; gst-launch lines use integers.
        if isinstance(value, int) and not isinstance(value, bool):
            policies = list(BundlePolicy)
            if 0 <= value < len(policies):
                return policies[value]
            raise ValueError(f"bundle-policy must be between 0 and {len(policies) - 1}")
        if isinstance(value, str):
            return value.strip().lower().replace("_", "-")
        return value

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return float(value)

    def with_overrides(self, **overrides: Any) -> "SessionConfig":
        """Return a validated copy with every non-``None`` override applied."""

        payload = self.model_dump()
        payload.update({key: value for key, value in overrides.items() if value is not None})
        return build_config(payload)


def build_config(payload: Optional[Dict[str, Any]] = None, **kwargs: Any) -> SessionConfig:
    """
    Validate ``payload``/``kwargs`` into a :class:`SessionConfig`.

    Validation failures are re-raised as :class:`ConfigurationError`.
    """

    data: Dict[str, Any] = dict(payload or {})
    data.update(kwargs)
    try:
        return SessionConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_profiles(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Read a YAML profile file.

    The file maps profile names to configuration mappings::

        default:
          whip-endpoint: https://example.com/whip/endpoint/room1234
          bundle-policy: max-bundle
    """

    profile_path = Path(path)
    try:
        with profile_path.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"profile file {profile_path} does not exist") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"profile file {profile_path} is not valid YAML: {exc}") from exc
    if not isinstance(profiles, dict):
        raise ConfigurationError(f"profile file {profile_path} must contain a mapping")
    LOG.debug("Loaded %d profile(s) from %s", len(profiles), profile_path)
    return profiles


def load_config(path: Union[str, Path], profile: str = "default", **overrides: Any) -> SessionConfig:
    profiles = load_profiles(path)
    entry = profiles.get(profile)
    if not isinstance(entry, dict):
        raise ConfigurationError(f"profile {profile!r} not found in {path}")
    payload = dict(entry)
    payload.update({key: value for key, value in overrides.items() if value is not None})
    return build_config(payload)


__all__ = [
    "BundlePolicy",
    "RenegotiationPolicy",
    "SessionConfig",
    "build_config",
    "load_config",
    "load_profiles",
]
