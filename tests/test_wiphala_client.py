import json
from concurrent import futures

import grpc
import pytest

from clients.wiphala import DEFAULT_PORT, NotifyFailure, WiphalaClient, parse_target
from protos import (
    ORCHESTRATOR_SERVICE,
    SEGUE_PLAYLIST_METHOD,
    PlaylistSegue,
    PlaylistSegueResponse,
)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("grpc://wiphala:6000", ("wiphala", 6000)),
        ("http://wiphala.internal", ("wiphala.internal", DEFAULT_PORT)),
        ("wiphala:7000", ("wiphala", 7000)),
        ("localhost", ("localhost", DEFAULT_PORT)),
    ],
)
def test_parse_target(url, expected):
    assert parse_target(url) == expected


@pytest.mark.parametrize("url", ["", None, "grpc://wiphala:notaport", "grpc://"])
def test_parse_target_rejects_malformed_urls(url):
    with pytest.raises(NotifyFailure):
        parse_target(url)


class FakeRpcError(grpc.RpcError):
    pass


class FakeChannel:
    def __init__(self, target, fail=False):
        self.target = target
        self.fail = fail
        self.calls = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def unary_unary(self, method, request_serializer=None, response_deserializer=None):
        def call(request, timeout=None):
            self.calls.append((method, request_serializer(request), timeout))
            if self.fail:
                raise FakeRpcError("unavailable")
            return response_deserializer(b"")

        return call


def install_channel(monkeypatch, fail=False):
    channels = []

    def factory(target):
        ch = FakeChannel(target, fail=fail)
        channels.append(ch)
        return ch

    monkeypatch.setattr("grpc.insecure_channel", factory)
    return channels


def test_talkback_sends_playlist_segue(monkeypatch):
    channels = install_channel(monkeypatch)
    output = {"posts": [{"cid": "c1", "text": "héllo"}], "keywords": ["Fire"]}

    ok = WiphalaClient(timeout=3).talkback("grpc://wiphala:6000", "news", "MonitorHydrate", output)

    assert ok is True
    ch = channels[0]
    assert ch.target == "wiphala:6000"
    assert ch.closed
    method, raw, timeout = ch.calls[0]
    assert method == SEGUE_PLAYLIST_METHOD
    assert timeout == 3
    msg = PlaylistSegue.FromString(raw)
    assert msg.slug == "news"
    assert msg.operation == "MonitorHydrate"
    assert json.loads(msg.output) == output


def test_talkback_uses_default_port(monkeypatch):
    channels = install_channel(monkeypatch)
    WiphalaClient().talkback("http://wiphala", "news", "MonitorSlack", [])
    assert channels[0].target == f"wiphala:{DEFAULT_PORT}"
    assert PlaylistSegue.FromString(channels[0].calls[0][1]).output == "[]"


def test_talkback_swallows_rpc_errors(monkeypatch):
    install_channel(monkeypatch, fail=True)
    assert WiphalaClient().talkback("grpc://wiphala:6000", "news", "MonitorBluesky", []) is False


def test_talkback_swallows_malformed_url(monkeypatch):
    channels = install_channel(monkeypatch)
    assert WiphalaClient().talkback("grpc://", "news", "MonitorBluesky", []) is False
    assert channels == []


def test_talkback_swallows_unexpected_errors(monkeypatch):
    def boom(target):
        raise RuntimeError("channel creation failed")

    monkeypatch.setattr("grpc.insecure_channel", boom)
    assert WiphalaClient().talkback("grpc://wiphala:6000", "news", "MonitorBluesky", []) is False


def test_timeout_from_environment(monkeypatch):
    monkeypatch.setenv("TALKBACK_TIMEOUT", "2.5")
    assert WiphalaClient().timeout == 2.5


@pytest.mark.slow
def test_talkback_round_trip_over_grpc():
    received = []

    def segue_playlist(request, context):
        received.append(request)
        return PlaylistSegueResponse()

    handler = grpc.method_handlers_generic_handler(
        ORCHESTRATOR_SERVICE,
        {
            "SeguePlaylist": grpc.unary_unary_rpc_method_handler(
                segue_playlist,
                request_deserializer=PlaylistSegue.FromString,
                response_serializer=PlaylistSegueResponse.SerializeToString,
            )
        },
    )
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=2))
    server.add_generic_rpc_handlers((handler,))
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    try:
        ok = WiphalaClient(timeout=5).talkback(
            f"grpc://127.0.0.1:{port}", "news", "TuttiMonitor", {"posts": []}
        )
    finally:
        server.stop(None)

    assert ok is True
    assert len(received) == 1
    assert received[0].slug == "news"
    assert received[0].operation == "TuttiMonitor"
    assert json.loads(received[0].output) == {"posts": []}


def test_talkback_to_closed_port_returns_false():
    # nothing listens on port 1; the call fails fast with UNAVAILABLE
    assert WiphalaClient(timeout=2).talkback("grpc://127.0.0.1:1", "news", "MonitorSlack", []) is False
