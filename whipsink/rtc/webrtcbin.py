"""
GStreamer ``webrtcbin`` backed peer connection.

When the GStreamer runtime (PyGObject + gst-plugins-bad) is not available the
module still imports; constructing :class:`WebRTCBinPeer` then raises
:class:`WebRTCUnavailableError`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, TYPE_CHECKING

from ..config import BundlePolicy
from ..errors import WhipError
from ..sdp import SdpType, SessionDescription
from .peer import IceCandidateCallback, NegotiationNeededCallback, OfferCallback, PeerConnection

try:  # pragma: no cover - availability depends on host environment
    import gi  # type: ignore

    gi.require_version("Gst", "1.0")
    gi.require_version("GstSdp", "1.0")
    gi.require_version("GstWebRTC", "1.0")
    from gi.repository import Gst, GstSdp, GstWebRTC  # type: ignore
except (ImportError, ValueError) as exc:  # pragma: no cover
    Gst = None  # type: ignore[assignment]
    GstSdp = None  # type: ignore[assignment]
    GstWebRTC = None  # type: ignore[assignment]
    _GST_IMPORT_ERROR: Optional[BaseException] = exc
else:  # pragma: no cover - executed only when GStreamer is present
    _GST_IMPORT_ERROR = None

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from gi.repository import Gst as GstModule
else:
    GstModule = Any

LOG = logging.getLogger(__name__)

_GST_INIT_LOCK = threading.Lock()
_GST_INITIALISED = False


class WebRTCUnavailableError(WhipError):
    """Raised when webrtcbin cannot be created due to missing dependencies."""


def gstreamer_available() -> bool:
    return Gst is not None


def require_gstreamer() -> None:
    if Gst is None:
        raise WebRTCUnavailableError(
            "GStreamer runtime is not available. Install PyGObject and GStreamer "
            "1.20+ with the webrtc plugins to publish over WHIP."
        ) from _GST_IMPORT_ERROR
    global _GST_INITIALISED
    with _GST_INIT_LOCK:
        if not _GST_INITIALISED:
            Gst.init(None)
            _GST_INITIALISED = True


def _to_gst_description(description: SessionDescription) -> "GstWebRTC.WebRTCSessionDescription":  # pragma: no cover
    result, message = GstSdp.SDPMessage.new_from_text(description.as_text())
    if result != GstSdp.SDPResult.OK:
        raise ValueError(f"GstSdp could not parse {description.type.value}")
    sdp_type = (
        GstWebRTC.WebRTCSDPType.OFFER
        if description.type is SdpType.OFFER
        else GstWebRTC.WebRTCSDPType.ANSWER
    )
    return GstWebRTC.WebRTCSessionDescription.new(sdp_type, message)


class WebRTCBinPeer(PeerConnection):  # pragma: no cover - requires GStreamer
    """
    :class:`PeerConnection` implemented on top of a ``webrtcbin`` element.

    Either wraps an existing element (e.g. one created by ``Gst.parse_launch``)
    or creates a fresh one named ``whip-webrtcbin``.
    """

    def __init__(self, webrtcbin: Optional["GstModule.Element"] = None, *, name: str = "whip-webrtcbin") -> None:
        require_gstreamer()
        if webrtcbin is None:
            webrtcbin = Gst.ElementFactory.make("webrtcbin", name)
            if webrtcbin is None:
                raise WebRTCUnavailableError("webrtcbin element is missing (gst-plugins-bad)")
        self._webrtcbin = webrtcbin
        self._lock = threading.RLock()
        self._handlers: list = []
        self._pads: list = []

    @property
    def element(self) -> "GstModule.Element":
        return self._webrtcbin

    # ------------------------------------------------------------------ signalling

    def create_offer(self, callback: OfferCallback) -> None:
        promise = Gst.Promise.new_with_change_func(self._on_offer_promise, callback)
        self._webrtcbin.emit("create-offer", None, promise)

    def _on_offer_promise(self, promise: "GstModule.Promise", callback: OfferCallback) -> None:
        offer: Optional[SessionDescription] = None
        try:
            if promise.wait() == Gst.PromiseResult.REPLIED:
                reply = promise.get_reply()
                native = reply.get_value("offer") if reply is not None else None
                if native is not None:
                    offer = SessionDescription(type=SdpType.OFFER, sdp=native.sdp.as_text())
            else:
                LOG.error("create-offer promise was not replied")
        except Exception:
            LOG.exception("Failed to read offer from create-offer promise")
        callback(offer)

    def set_local_description(self, description: SessionDescription) -> None:
        self._webrtcbin.emit("set-local-description", _to_gst_description(description), None)

    def set_remote_description(self, description: SessionDescription) -> None:
        self._webrtcbin.emit("set-remote-description", _to_gst_description(description), None)

    # ------------------------------------------------------------------ ICE configuration

    def set_stun_server(self, url: Optional[str]) -> None:
        self._webrtcbin.set_property("stun-server", url)

    def add_turn_server(self, url: str) -> bool:
        return bool(self._webrtcbin.emit("add-turn-server", url))

    def set_bundle_policy(self, policy: BundlePolicy) -> None:
        self._webrtcbin.set_property("bundle-policy", GstWebRTC.WebRTCBundlePolicy(policy.gst_value))

    # ------------------------------------------------------------------ events

    def connect_negotiation_needed(self, callback: NegotiationNeededCallback) -> None:
        handler_id = self._webrtcbin.connect("on-negotiation-needed", lambda _element: callback())
        with self._lock:
            self._handlers.append(handler_id)

    def connect_ice_candidate(self, callback: IceCandidateCallback) -> None:
        handler_id = self._webrtcbin.connect(
            "on-ice-candidate",
            lambda _element, mline_index, candidate: callback(int(mline_index), str(candidate)),
        )
        with self._lock:
            self._handlers.append(handler_id)

    # ------------------------------------------------------------------ media plane

    def request_pad(self, name: Optional[str] = None) -> "GstModule.Pad":
        template = name or "sink_%u"
        requester = getattr(self._webrtcbin, "request_pad_simple", None) or self._webrtcbin.get_request_pad
        pad = requester(template)
        if pad is None:
            raise RuntimeError(f"webrtcbin refused to hand out pad {template}")
        with self._lock:
            self._pads.append(pad)
        LOG.debug("Requested webrtcbin pad %s", pad.get_name())
        return pad

    def release_pad(self, pad: "GstModule.Pad") -> None:
        LOG.debug("Releasing request pad %s", pad.get_name())
        with self._lock:
            if pad in self._pads:
                self._pads.remove(pad)
        self._webrtcbin.release_request_pad(pad)

    def close(self) -> None:
        with self._lock:
            handlers = list(self._handlers)
            self._handlers.clear()
            pads = list(self._pads)
            self._pads.clear()
        for handler_id in handlers:
            try:
                self._webrtcbin.disconnect(handler_id)
            except Exception:
                LOG.debug("Failed to disconnect webrtcbin handler", exc_info=True)
        for pad in pads:
            try:
                self._webrtcbin.release_request_pad(pad)
            except Exception:
                LOG.debug("Failed to release webrtcbin pad", exc_info=True)


__all__ = ["WebRTCBinPeer", "WebRTCUnavailableError", "gstreamer_available"]
