#!/usr/bin/env python3
"""Submit one task to a running monitor worker over gRPC.

Usage:
  python -m scripts.send_task --slug my-playlist --keyword earthquake --keyword wildfire
  python -m scripts.send_task --payload task.json --target localhost:50052

Prints the worker's success flag; exit code 1 when the task was refused.
"""
import argparse
import json
import sys
from typing import Any, Dict, List, Optional

import grpc

from protos import PERFORM_TASK_METHOD, WorkerRequest, WorkerResponse


def build_task(
    name: str,
    slug: str,
    talkback: str,
    keywords: Optional[List[str]] = None,
    since: Optional[int] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"keywords": list(keywords or [])}
    if since is not None:
        metadata["since"] = since
    return {
        "name": name,
        "talkback": talkback,
        "playlist": {"slug": slug},
        "context": {"metadata": metadata, "sequence": []},
    }


def send_task(target: str, payload: str, timeout: float = 10.0) -> bool:
    with grpc.insecure_channel(target) as channel:
        perform_task = channel.unary_unary(
            PERFORM_TASK_METHOD,
            request_serializer=WorkerRequest.SerializeToString,
            response_deserializer=WorkerResponse.FromString,
        )
        response = perform_task(WorkerRequest(payload=payload), timeout=timeout)
    return bool(response.success)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Send a task to the monitor worker")
    parser.add_argument("--target", default="localhost:50052", help="worker host:port")
    parser.add_argument("--payload", help="JSON file holding a complete task; other task flags are ignored")
    parser.add_argument("--name", default="TuttiMonitor", help="task (stage) name")
    parser.add_argument("--slug", default="local-playlist", help="playlist slug")
    parser.add_argument("--talkback", default="grpc://localhost:50051", help="orchestrator talkback url")
    parser.add_argument("--keyword", action="append", dest="keywords", help="search keyword (repeatable)")
    parser.add_argument("--since", type=int, help="search window in seconds")
    parser.add_argument("--timeout", type=float, default=10.0)
    args = parser.parse_args(argv)

    if args.payload:
        with open(args.payload, "r", encoding="utf-8") as f:
            payload = f.read()
    else:
        task = build_task(args.name, args.slug, args.talkback, args.keywords, args.since)
        payload = json.dumps(task)

    try:
        ok = send_task(args.target, payload, timeout=args.timeout)
    except grpc.RpcError as e:
        print(f"PerformTask failed: {e}", file=sys.stderr)
        return 2

    print(f"success={str(ok).lower()}")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
