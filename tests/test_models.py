import json

import pytest
from pydantic import ValidationError

from worker.models import StageKind, Task


def payload(**overrides):
    task = {
        "name": "MonitorBluesky",
        "talkback": "grpc://wiphala:50051",
        "playlist": {"slug": "breaking-news"},
        "context": {"metadata": {"keywords": ["earthquake"], "since": 600}},
    }
    task.update(overrides)
    return json.dumps(task)


def test_parse_full_task():
    task = Task.parse(payload())
    assert task.kind is StageKind.SEARCH
    assert task.slug == "breaking-news"
    assert task.context.metadata.keywords == ["earthquake"]
    assert task.context.metadata.since == 600
    assert task.context.sequence == []


def test_parse_accepts_bytes():
    assert Task.parse(payload().encode()).name == "MonitorBluesky"


@pytest.mark.parametrize("raw", ["not json", "[]", "{}", '{"name": "MonitorBluesky"}'])
def test_malformed_payloads_raise(raw):
    with pytest.raises(ValidationError):
        Task.parse(raw)


def test_missing_playlist_slug_raises():
    with pytest.raises(ValidationError):
        Task.parse(payload(playlist={}))


def test_null_context_sections_default_to_empty():
    task = Task.parse(payload(context={"metadata": None, "sequence": None}))
    assert task.context.metadata.search_terms() == []
    assert task.context.sequence == []

    task = Task.parse(payload(context=None))
    assert task.context.metadata.keywords == []


def test_search_terms_append_legacy_keyword():
    task = Task.parse(payload(context={"metadata": {"keywords": ["a", "b"], "keyword": "legacy"}}))
    assert task.context.metadata.search_terms() == ["a", "b", "legacy"]


def test_search_terms_ignore_blank_entries():
    task = Task.parse(payload(context={"metadata": {"keywords": ["", "  ", "a"], "keyword": ""}}))
    assert task.context.metadata.search_terms() == ["a"]


def test_search_terms_do_not_mutate_keywords():
    task = Task.parse(payload(context={"metadata": {"keywords": ["a"], "keyword": "b"}}))
    task.context.metadata.search_terms()
    assert task.context.metadata.keywords == ["a"]


def test_numeric_string_since_is_coerced():
    task = Task.parse(payload(context={"metadata": {"since": "3600"}}))
    assert task.context.metadata.since == 3600


def test_extra_fields_are_kept():
    task = Task.parse(payload(context={"metadata": {"keywords": [], "channel": "#news"}}))
    assert task.context.metadata.model_extra["channel"] == "#news"


def test_stage_output_returns_latest_entry():
    sequence = [
        {"name": "MonitorBluesky", "output": [{"cid": "old"}]},
        {"name": "MonitorGemini", "output": {"cids": []}},
        {"name": "MonitorBluesky", "output": [{"cid": "new"}]},
    ]
    task = Task.parse(payload(context={"sequence": sequence}))
    assert task.context.stage_output("MonitorBluesky") == [{"cid": "new"}]
    assert task.context.stage_output("MonitorHydrate") is None


def test_unknown_stage_name_parses_without_kind():
    task = Task.parse(payload(name="MonitorTikTok"))
    assert task.kind is None
    assert StageKind.parse("MonitorTikTok") is None
    assert StageKind.parse("TuttiMonitor") is StageKind.TUTTI
