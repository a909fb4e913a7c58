"""Wiphala talkback client

Reports a pipeline stage's output to the orchestrator's SeguePlaylist RPC.
Delivery is fire-and-forget: one unary call, no retry, and every failure
(bad URL, unreachable host, remote error) is logged rather than raised.
"""

import json
import logging
import os
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import grpc

from protos import SEGUE_PLAYLIST_METHOD, PlaylistSegue, PlaylistSegueResponse

log = logging.getLogger(__name__)

DEFAULT_PORT = 50051


class NotifyFailure(Exception):
    """The talkback could not be delivered."""


def parse_target(talkback_url: str) -> Tuple[str, int]:
    """Return (host, port) for a talkback URL such as grpc://wiphala:50051.

    Bare host[:port] values are accepted too; the port defaults to 50051.
    """
    if not talkback_url or not isinstance(talkback_url, str):
        raise NotifyFailure(f"invalid talkback url: {talkback_url!r}")
    if "://" not in talkback_url:
        talkback_url = "//" + talkback_url
    parsed = urlparse(talkback_url)
    try:
        host = parsed.hostname
        port = parsed.port or DEFAULT_PORT
    except ValueError as exc:
        raise NotifyFailure(f"invalid talkback url {talkback_url!r}: {exc}") from exc
    if not host:
        raise NotifyFailure(f"talkback url has no host: {talkback_url!r}")
    return host, port


class WiphalaClient:
    def __init__(self, timeout: Optional[float] = None) -> None:
        # per-call deadline in seconds; TALKBACK_TIMEOUT overrides the default
        if timeout is None:
            timeout = float(os.environ.get("TALKBACK_TIMEOUT", "10"))
        self.timeout = timeout

    def talkback(self, talkback_url: str, slug: str, operation: str, output: Any) -> bool:
        """Send `output` for stage `operation` of playlist `slug`.

        Returns True when the orchestrator acknowledged the call. Never raises.
        """
        try:
            host, port = parse_target(talkback_url)
            request = PlaylistSegue(
                slug=slug or "",
                operation=operation,
                output=json.dumps(output, ensure_ascii=False, default=str),
            )
            with grpc.insecure_channel(f"{host}:{port}") as channel:
                segue_playlist = channel.unary_unary(
                    SEGUE_PLAYLIST_METHOD,
                    request_serializer=PlaylistSegue.SerializeToString,
                    response_deserializer=PlaylistSegueResponse.FromString,
                )
                segue_playlist(request, timeout=self.timeout)
        except NotifyFailure as exc:
            log.error("Talkback %s for %s not sent: %s", operation, slug, exc)
            return False
        except grpc.RpcError as exc:
            log.error("Talkback %s for %s failed: %s", operation, slug, exc)
            return False
        except Exception:
            log.exception("Talkback %s for %s failed", operation, slug)
            return False

        log.info("Talkback %s delivered for %s", operation, slug)
        return True


__all__ = ["WiphalaClient", "NotifyFailure", "parse_target", "DEFAULT_PORT"]
