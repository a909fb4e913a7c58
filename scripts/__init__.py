"""scripts package initializer so the CLIs can be run with
`python -m scripts.<name>`.

Expose the main helpers so linters and importers can reference them.
"""

from .send_task import build_task, send_task
from .validate_prompts import validate_prompts

__all__ = ["validate_prompts", "build_task", "send_task"]
