"""Gemini newsworthiness filter

Sends a batch of Bluesky posts to the Gemini generateContent endpoint in a
single request and turns the model's free-form answer back into JSON.

The model is asked for one JSON object ({"breaking", "cids", "keywords"}) but
in practice may wrap it in a markdown fence, return an array instead, or stop
mid-array when it runs out of output tokens. parse_model_output() recovers what
it can from those shapes. Nothing in this module raises to the caller: every
failure is logged and reported as an empty list.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Union, cast

import requests
from jinja2 import TemplateError

from . import prompts
from .prompts import PromptStore
from .types import PostRecord

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-exp"
GENERATE_CONTENT_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
PROMPT_ID = "newsworthy-filter"
MAX_KEYWORDS = 15

# fields the model must not judge posts by
EXCLUDED_FIELDS = ("embed",)

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_CIVIC_INTEGRITY", "threshold": "BLOCK_NONE"},
]

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```$")

ModelOutput = Union[Dict[str, Any], List[Any]]


class FilterParseFailure(Exception):
    """The model answer could not be parsed as JSON."""


def extract_answer_text(envelope: Any) -> str:
    """Return candidates[0].content.parts[0].text from a generateContent response."""
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return str(text or "").strip()


def strip_code_fence(text: str) -> str:
    m = _FENCED_BLOCK.search(text)
    if m:
        return m.group(1).strip()
    # a truncated answer keeps its opening fence but loses the closing one
    text = _OPENING_FENCE.sub("", text)
    text = _CLOSING_FENCE.sub("", text)
    return text.strip()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise FilterParseFailure(str(exc)) from exc


def recover_truncated_array(text: str) -> List[Any]:
    """Close a JSON array cut off mid-way, keeping everything up to the last complete object."""
    last_brace = text.rfind("}")
    if last_brace == -1:
        raise FilterParseFailure("no complete object in truncated array")
    parsed = _loads(text[: last_brace + 1] + "]")
    if not isinstance(parsed, list):
        raise FilterParseFailure("recovered output is not an array")
    return parsed


def parse_model_output(text: Optional[str]) -> ModelOutput:
    """Parse the model's answer into a dict or list; anything unusable becomes []."""
    body = strip_code_fence((text or "").strip())

    if body.startswith("[") and not body.endswith("]"):
        try:
            return recover_truncated_array(body)
        except FilterParseFailure as exc:
            log.error("Recovery of truncated model output failed: %s", exc)
            return []

    try:
        parsed = _loads(body)
    except FilterParseFailure:
        log.error("Failed to parse model output: %s", body)
        return []
    if not isinstance(parsed, (dict, list)):
        log.error("Model output is neither an object nor an array: %s", body)
        return []
    return cast(ModelOutput, parsed)


def text_fields(post: PostRecord) -> Dict[str, Any]:
    """Copy of `post` without embeds, at the top level and inside the record."""
    if not isinstance(post, dict):
        return cast(Dict[str, Any], post)
    out = {k: v for k, v in post.items() if k not in EXCLUDED_FIELDS}
    record = out.get("record")
    if isinstance(record, dict):
        out["record"] = {k: v for k, v in record.items() if k not in EXCLUDED_FIELDS}
    return out


class GeminiClient:
    """Batch newsworthiness filter backed by the Gemini API.

    The API key defaults to GEMINI_API_KEY and the model to GEMINI_MODEL.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        prompt_store: Optional[PromptStore] = None,
        timeout: float = 60.0,
        url: Optional[str] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.model = model or os.environ.get("GEMINI_MODEL") or DEFAULT_MODEL
        self.url = url or GENERATE_CONTENT_URL.format(model=self.model)
        self.prompt_store = prompt_store
        self.timeout = timeout

    def build_prompt(self, posts: List[PostRecord]) -> str:
        store = self.prompt_store or prompts.ps
        rendered = [json.dumps(text_fields(p), ensure_ascii=False) for p in posts]
        return store.render(PROMPT_ID, {"posts": rendered, "max_keywords": MAX_KEYWORDS})

    def build_request(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "safetySettings": SAFETY_SETTINGS,
        }

    def filter_newsworthy_posts(self, posts: Optional[List[PostRecord]]) -> ModelOutput:
        """Ask the model which posts are newsworthy.

        Normally returns {"breaking": [cid...], "cids": [cid...], "keywords": [...]},
        but the model's shape is not guaranteed: callers must accept a list too.
        Returns [] when there is nothing to filter or anything goes wrong.
        """
        if not posts:
            return []
        if not self.api_key:
            log.error("GEMINI_API_KEY not configured, skipping newsworthiness filter")
            return []

        try:
            prompt = self.build_prompt(posts)
        except (KeyError, TemplateError) as exc:
            log.error("Could not render prompt %s: %s", PROMPT_ID, exc)
            return []

        try:
            resp = requests.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_request(prompt),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error("Gemini API request failed: %s", exc)
            return []

        status = getattr(resp, "status_code", None)
        if status is None or not 200 <= status < 300:
            log.error("Gemini API failed: HTTP %s %s", status, resp.text)
            return []

        try:
            envelope = resp.json()
        except ValueError:
            log.error("Gemini API returned invalid JSON: %s", resp.text)
            return []

        return parse_model_output(extract_answer_text(envelope))


__all__ = [
    "GeminiClient",
    "FilterParseFailure",
    "parse_model_output",
    "recover_truncated_array",
    "strip_code_fence",
    "extract_answer_text",
]
