"""
Command line WHIP publisher.

Builds a small GStreamer pipeline, hands its RTP output to ``webrtcbin`` and
publishes it to a WHIP endpoint until interrupted::

    whipsink --endpoint http://localhost:7080/whip/endpoint/abc123 \
        --bundle-policy max-bundle

    whipsink --config profiles.yaml --profile studio --duration 30
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from typing import Iterable, Optional

from .config import BundlePolicy, SessionConfig, build_config, load_config
from .errors import WhipError
from .publisher import WhipPublisher
from .rtc.webrtcbin import Gst, WebRTCBinPeer, require_gstreamer
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)

DEFAULT_SOURCE = (
    "videotestsrc is-live=true pattern=ball ! videoconvert ! queue ! "
    "vp8enc deadline=1 ! rtpvp8pay ! queue"
)
BUS_POLL_INTERVAL_NS = 100_000_000  # 100ms


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish a GStreamer stream over WHIP")
    parser.add_argument("--endpoint", help="WHIP endpoint URL to POST the SDP offer to")
    parser.add_argument("--config", help="YAML profile file")
    parser.add_argument("--profile", default="default", help="profile to load from --config")
    parser.add_argument("--stun-server", help="STUN server, stun://hostname:port")
    parser.add_argument("--turn-server", help="TURN server, turn(s)://username:password@host:port")
    parser.add_argument(
        "--bundle-policy",
        choices=[policy.value for policy in BundlePolicy],
        help="bundle policy applied to webrtcbin",
    )
    parser.add_argument(
        "--no-link-headers",
        dest="use_link_headers",
        action="store_false",
        default=None,
        help="do not query the endpoint for ICE servers",
    )
    parser.add_argument("--bearer-token", help="token sent as Authorization: Bearer")
    parser.add_argument("--source", default=DEFAULT_SOURCE, help="gst-launch description producing RTP")
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="optional duration in seconds; 0 means run until interrupted",
    )
    parser.add_argument("--log-level", default="INFO", help="logging level")
    return parser.parse_args(list(argv) if argv is not None else None)


def config_from_args(args: argparse.Namespace) -> SessionConfig:
    overrides = {
        "endpoint": args.endpoint,
        "stun_server": args.stun_server,
        "turn_server": args.turn_server,
        "bundle_policy": args.bundle_policy,
        "use_link_headers": args.use_link_headers,
        "bearer_token": args.bearer_token,
    }
    if args.config:
        return load_config(args.config, args.profile, **overrides)
    return build_config({key: value for key, value in overrides.items() if value is not None})


def _build_pipeline(publisher: WhipPublisher, peer: WebRTCBinPeer, source: str) -> "Gst.Pipeline":  # pragma: no cover
    pipeline = Gst.Pipeline.new("whipsink")
    source_bin = Gst.parse_bin_from_description(source, True)
    pipeline.add(source_bin)
    pipeline.add(peer.element)

    sink_pad = publisher.request_pad()
    if source_bin.get_static_pad("src").link(sink_pad) != Gst.PadLinkReturn.OK:
        raise RuntimeError("Failed to link source into webrtcbin")
    return pipeline


def _poll_bus(pipeline: "Gst.Pipeline") -> bool:  # pragma: no cover
    bus = pipeline.get_bus()
    message = bus.timed_pop_filtered(
        BUS_POLL_INTERVAL_NS, Gst.MessageType.ERROR | Gst.MessageType.EOS
    )
    if message is None:
        return True
    if message.type == Gst.MessageType.ERROR:
        error, debug = message.parse_error()
        LOG.error("Pipeline error: %s (%s)", error.message, debug)
    else:
        LOG.info("End of stream")
    return False


def run(args: argparse.Namespace) -> int:  # pragma: no cover - requires GStreamer
    config = config_from_args(args)
    require_gstreamer()

    peer = WebRTCBinPeer()
    publisher = WhipPublisher(config, peer)
    publisher.start()
    pipeline = _build_pipeline(publisher, peer, args.source)

    stop_requested = False

    def _handle_signal(signum, frame):  # type: ignore[override]
        nonlocal stop_requested
        LOG.info("Received signal %s, shutting down...", signum)
        stop_requested = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    if pipeline.set_state(Gst.State.PLAYING) == Gst.StateChangeReturn.FAILURE:
        LOG.error("Failed to set pipeline to PLAYING")
        publisher.stop()
        return 1

    try:
        start_time = time.monotonic()
        while not stop_requested:
            if not _poll_bus(pipeline):
                break
            if args.duration > 0 and time.monotonic() - start_time >= args.duration:
                break
    finally:
        status = publisher.stop(timeout=5.0)
        if status is not None:
            LOG.info("WHIP resource deleted (status %d)", status)
        pipeline.set_state(Gst.State.NULL)
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        return run(args)
    except WhipError as exc:
        LOG.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
