"""Monitor pipeline stages.

A task names one stage of the monitoring playlist; earlier stages' outputs
travel with it in context.sequence. Each stage reports its own output through
the Wiphala talkback, which the orchestrator feeds into the next task:

    MonitorBluesky -> MonitorGemini -> MonitorHydrate -> MonitorSlack

TuttiMonitor runs search, filter and hydration inside one task and reports
only the final hydrated result.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, cast

from clients.types import FilterResult, PostRecord

from .metrics import stage_outcomes_total
from .models import StageKind, Task

log = logging.getLogger(__name__)

DEFAULT_SINCE_SECONDS = 3600


class StageOutcome(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    UNDELIVERED = "undelivered"
    IGNORED = "ignored"
    FAILED = "failed"


class UnknownStage(Exception):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown operation: {name}")
        self.name = name


# --- hydration ---
def index_posts(posts: Optional[List[PostRecord]]) -> Dict[str, PostRecord]:
    """Map cid -> post; the first post wins when a cid repeats."""
    index: Dict[str, PostRecord] = {}
    for post in posts or []:
        cid = post.get("cid") if isinstance(post, dict) else None
        if not isinstance(cid, str):
            log.warning("Ignoring post without a cid: %r", post)
            continue
        index.setdefault(cid, post)
    return index


def resolve_cids(cids: List[Any], index: Dict[str, PostRecord]) -> List[PostRecord]:
    return [index[cid] for cid in cids if isinstance(cid, str) and cid in index]


def resolve_breaking(entries: List[Any], index: Dict[str, PostRecord]) -> List[PostRecord]:
    """Turn breaking cids into posts, keeping entries that are posts already.

    Anything else (unknown cids, nulls, posts without a cid) is dropped.
    """
    resolved: List[PostRecord] = []
    for entry in entries:
        if isinstance(entry, str):
            if entry in index:
                resolved.append(index[entry])
        elif isinstance(entry, dict) and isinstance(entry.get("cid"), str):
            resolved.append(cast(PostRecord, entry))
        else:
            log.warning("Dropping unusable breaking entry: %r", entry)
    return resolved


def coerce_filter_result(result: Any) -> FilterResult:
    """The model sometimes answers with an array; use its first element."""
    if isinstance(result, list):
        result = result[0] if result else {}
    return cast(FilterResult, dict(result) if isinstance(result, dict) else {})


def hydrate(result: FilterResult, posts: Optional[List[PostRecord]]) -> FilterResult:
    """Replace cid references in a filter result with the full posts they name.

    `cids` becomes `posts` and `breaking` is rewritten from cids to posts.
    Cids with no matching post are dropped. Breaking entries that are posts
    already are kept as they are, so hydrating twice changes nothing. The
    input dict is not modified.
    """
    hydrated = cast(Dict[str, Any], dict(result))
    index = index_posts(posts)

    cids = hydrated.pop("cids", None)
    if isinstance(cids, list):
        hydrated["posts"] = resolve_cids(cids, index)
    elif cids is not None:
        log.warning("Filter result cids is a %s, not a list; dropping it", type(cids).__name__)
        hydrated["posts"] = []

    breaking = hydrated.get("breaking")
    if isinstance(breaking, list):
        hydrated["breaking"] = resolve_breaking(breaking, index)
    elif breaking is not None:
        log.warning("Filter result breaking is a %s, not a list; dropping it", type(breaking).__name__)
        hydrated["breaking"] = []

    return cast(FilterResult, hydrated)


def _post_list(output: Any, stage: StageKind, slug: str) -> List[PostRecord]:
    if output is None:
        log.warning("No %s output in sequence for %s", stage.value, slug)
        return []
    if not isinstance(output, list):
        log.warning("%s output for %s is a %s, not a list", stage.value, slug, type(output).__name__)
        return []
    return output


class Pipeline:
    """Runs one stage per task using injected service clients."""

    def __init__(self, bluesky: Any, gemini: Any, wiphala: Any) -> None:
        self.bluesky = bluesky
        self.gemini = gemini
        self.wiphala = wiphala
        self._handlers: Dict[StageKind, Callable[[Task], StageOutcome]] = {
            StageKind.TUTTI: self.tutti,
            StageKind.SEARCH: self.search_stage,
            StageKind.FILTER: self.filter_stage,
            StageKind.HYDRATE: self.hydrate_stage,
            StageKind.DELIVER: self.deliver_stage,
        }

    def handler_for(self, task: Task) -> Callable[[Task], StageOutcome]:
        kind = task.kind
        if kind is None:
            raise UnknownStage(task.name)
        return self._handlers[kind]

    def process_task(self, task: Task) -> StageOutcome:
        """Run the stage named by `task`. Never raises; the outcome is logged and counted."""
        try:
            handler = self.handler_for(task)
        except UnknownStage as exc:
            log.warning("%s (playlist %s)", exc, task.slug)
            outcome = StageOutcome.IGNORED
        else:
            try:
                outcome = handler(task)
            except Exception:
                log.exception("Error in %s for %s", task.name, task.slug)
                outcome = StageOutcome.FAILED

        stage_label = task.kind.value if task.kind else "unknown"
        stage_outcomes_total.labels(stage=stage_label, outcome=outcome.value).inc()
        log.info("%s for %s finished: %s", task.name, task.slug, outcome.value)
        return outcome

    # --- helpers ---
    def _report(self, task: Task, stage: StageKind, output: Any) -> StageOutcome:
        delivered = self.wiphala.talkback(task.talkback, task.slug, stage.value, output)
        return StageOutcome.OK if delivered else StageOutcome.UNDELIVERED

    @staticmethod
    def _since(task: Task) -> int:
        since = task.context.metadata.since
        return DEFAULT_SINCE_SECONDS if since is None else since

    def _search(self, task: Task) -> Optional[List[PostRecord]]:
        terms = task.context.metadata.search_terms()
        if not terms:
            log.info("No keywords for %s, skipping search", task.slug)
            return None
        return self.bluesky.search_multiple(terms, self._since(task))

    # --- stages ---
    def search_stage(self, task: Task) -> StageOutcome:
        posts = self._search(task)
        if posts is None:
            return StageOutcome.SKIPPED
        return self._report(task, StageKind.SEARCH, posts)

    def filter_stage(self, task: Task) -> StageOutcome:
        posts = _post_list(task.context.stage_output(StageKind.SEARCH.value), StageKind.SEARCH, task.slug)
        result = coerce_filter_result(self.gemini.filter_newsworthy_posts(posts))
        return self._report(task, StageKind.FILTER, result)

    def hydrate_stage(self, task: Task) -> StageOutcome:
        ctx = task.context
        filtered = ctx.stage_output(StageKind.FILTER.value)
        if filtered is None:
            log.warning("No %s output in sequence for %s", StageKind.FILTER.value, task.slug)
        posts = _post_list(ctx.stage_output(StageKind.SEARCH.value), StageKind.SEARCH, task.slug)
        hydrated = hydrate(coerce_filter_result(filtered), posts)
        return self._report(task, StageKind.HYDRATE, hydrated)

    def deliver_stage(self, task: Task) -> StageOutcome:
        # downstream delivery (Slack) is handled outside this worker
        if task.context.stage_output(StageKind.HYDRATE.value) is None:
            log.warning("No %s output in sequence for %s", StageKind.HYDRATE.value, task.slug)
        return self._report(task, StageKind.DELIVER, [])

    def tutti(self, task: Task) -> StageOutcome:
        posts = self._search(task)
        if posts is None:
            return StageOutcome.SKIPPED
        result = coerce_filter_result(self.gemini.filter_newsworthy_posts(posts))
        return self._report(task, StageKind.TUTTI, hydrate(result, posts))


__all__ = [
    "Pipeline",
    "StageOutcome",
    "UnknownStage",
    "hydrate",
    "index_posts",
    "resolve_cids",
    "resolve_breaking",
    "coerce_filter_result",
    "DEFAULT_SINCE_SECONDS",
]
