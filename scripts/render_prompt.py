#!/usr/bin/env python3
"""Render a prompt template by id using the project's prompts.json.

Usage: python scripts/render_prompt.py <prompt_id> [variables.json]

Without a variables file the prompt's own example is used, which is handy for
reviewing the exact instruction block sent to Gemini.
"""
import json
import sys

from clients import ps


def main(argv):
    if len(argv) < 2:
        print("Usage: render_prompt.py <prompt_id> [variables.json]")
        return 2
    pid = argv[1]
    prompt = ps.get(pid)
    if prompt is None:
        print(f"prompt {pid} not found")
        return 3
    variables = prompt.get("example") or {}
    if len(argv) >= 3:
        with open(argv[2], "r", encoding="utf-8") as f:
            variables = json.load(f)
    print(ps.render(pid, variables))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
