from typing import Any, Dict, List, TypedDict


class PostRecord(TypedDict, total=False):
    uri: str
    cid: str
    author: Dict[str, Any]
    record: Dict[str, Any]
    text: str
    embed: Dict[str, Any]
    replyCount: int
    repostCount: int
    likeCount: int
    quoteCount: int
    indexedAt: str


class FilterResult(TypedDict, total=False):
    breaking: List[Any]
    cids: List[str]
    keywords: List[str]
    posts: List[PostRecord]


class Session(TypedDict):
    access_token: str
    refresh_token: str
