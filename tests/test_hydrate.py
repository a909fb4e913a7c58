import copy

import pytest

from worker.worker import coerce_filter_result, hydrate, index_posts


def post(cid, **fields):
    return {"cid": cid, "text": f"text {cid}", **fields}


POSTS = [post("c1"), post("c2"), post("c3")]


def test_cids_become_posts_and_unmatched_cids_are_dropped():
    result = {"cids": ["c1", "missing"], "keywords": ["Fire"]}

    out = hydrate(result, [post("c1")])

    assert out == {"posts": [post("c1")], "keywords": ["Fire"]}
    assert "cids" not in out


def test_posts_follow_cid_order():
    out = hydrate({"cids": ["c3", "c1"]}, POSTS)
    assert [p["cid"] for p in out["posts"]] == ["c3", "c1"]


def test_breaking_cids_are_rewritten_to_posts():
    out = hydrate({"breaking": ["c2", "nope"], "cids": ["c1"]}, POSTS)
    assert out["breaking"] == [post("c2")]
    assert out["posts"] == [post("c1")]


def test_breaking_may_overlap_cids():
    out = hydrate({"breaking": ["c1"], "cids": ["c1"]}, POSTS)
    assert out["breaking"] == [post("c1")]
    assert out["posts"] == [post("c1")]


def test_empty_breaking_stays_empty():
    assert hydrate({"breaking": []}, POSTS) == {"breaking": []}


def test_result_without_cids_gets_no_posts_key():
    out = hydrate({"keywords": ["Storm"]}, POSTS)
    assert out == {"keywords": ["Storm"]}


def test_null_cids_are_removed_without_posts():
    assert hydrate({"cids": None}, POSTS) == {}


def test_non_list_cids_are_flagged_and_dropped():
    out = hydrate({"cids": "c1"}, POSTS)
    assert out == {"posts": []}


def test_non_list_breaking_is_dropped():
    assert hydrate({"breaking": "c1"}, POSTS) == {"breaking": []}


def test_mixed_breaking_list_resolves_cids_and_drops_junk():
    out = hydrate({"breaking": ["c1", None, "nope", {"text": "no cid"}, 7]}, POSTS)
    assert out == {"breaking": [post("c1")]}


def test_breaking_keeps_posts_and_resolves_remaining_cids():
    out = hydrate({"breaking": [post("c2"), "c3"]}, POSTS)
    assert out["breaking"] == [post("c2"), post("c3")]
    assert hydrate(out, POSTS) == out


def test_rehydrating_is_a_no_op():
    once = hydrate({"breaking": ["c1"], "cids": ["c2"], "keywords": []}, POSTS)
    twice = hydrate(once, POSTS)
    assert twice == once


def test_input_is_not_mutated():
    result = {"breaking": ["c1"], "cids": ["c2"]}
    before = copy.deepcopy(result)
    hydrate(result, POSTS)
    assert result == before


def test_no_prior_posts_drops_everything():
    out = hydrate({"breaking": ["c1"], "cids": ["c2"]}, None)
    assert out == {"breaking": [], "posts": []}


def test_index_skips_posts_without_cid_and_keeps_first_duplicate():
    first = post("c1", likeCount=1)
    index = index_posts([{"text": "no cid"}, {"cid": 7}, first, post("c1", likeCount=2), "junk"])
    assert list(index) == ["c1"]
    assert index["c1"] is first


@pytest.mark.parametrize(
    "raw,expected",
    [
        ({"cids": ["c1"]}, {"cids": ["c1"]}),
        ([{"cids": ["c1"]}, {"cids": ["c2"]}], {"cids": ["c1"]}),
        ([], {}),
        (["junk"], {}),
        (None, {}),
        ("text", {}),
    ],
)
def test_coerce_filter_result(raw, expected):
    assert coerce_filter_result(raw) == expected
