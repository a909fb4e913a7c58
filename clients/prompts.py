"""PromptStore helper for loading and rendering prompt templates from prompts.json

The filter client renders its instruction block through this store so the
wording can be reviewed and changed without touching code. prompts.json sits
at the project root.
"""

import json
import os
from typing import Any, Dict, List, Optional

from jinja2 import Environment, StrictUndefined, Undefined

DEFAULT_PROMPTS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "prompts.json"
)

_FALSY = ("0", "", "false", "False")


def _make_env(strict: bool = False) -> Environment:
    if strict:
        return Environment(undefined=StrictUndefined, keep_trailing_newline=True)
    return Environment(undefined=Undefined, keep_trailing_newline=True)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "0") not in _FALSY


class PromptStore:
    def __init__(
        self,
        path: Optional[str] = None,
        strict: Optional[bool] = None,
        validate_schema: Optional[bool] = None,
    ):
        self.path = path or DEFAULT_PROMPTS_PATH
        # constructor args win over PROMPTS_STRICT / PROMPTS_VALIDATE_SCHEMA
        self.strict = _env_flag("PROMPTS_STRICT") if strict is None else bool(strict)
        self.validate_schema = (
            _env_flag("PROMPTS_VALIDATE_SCHEMA")
            if validate_schema is None
            else bool(validate_schema)
        )
        self.env = _make_env(self.strict)
        self._load()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            data = {"prompts": []}
        self._prompt_list = data.get("prompts", [])
        self._prompts = {p.get("id"): p for p in self._prompt_list}
        if self.validate_schema:
            self._validate_prompts()

    def list_prompts(self) -> List[str]:
        return list(self._prompts.keys())

    def get(self, prompt_id: str) -> Optional[Dict[str, Any]]:
        return self._prompts.get(prompt_id)

    def render(self, prompt_id: str, variables: Dict[str, Any]) -> str:
        p = self.get(prompt_id)
        if not p:
            raise KeyError(f"prompt {prompt_id} not found")
        template = self.env.from_string(p.get("prompt_template", ""))
        return str(template.render(**(variables or {})))

    def _validate_prompts(self) -> None:
        """Run lightweight schema checks on the loaded prompts.

        - every prompt has a string id and a string prompt_template
        - declared variables are a list of strings and all appear in the example
        - max_keywords (when declared) is an integer, posts is a list
        - the example renders with the template

        Raises ValueError on the first failure.
        """
        for p in self._prompt_list:
            pid = p.get("id")
            if not pid or not isinstance(pid, str):
                raise ValueError(f"Prompt has invalid or missing id: {pid}")

            tpl_val = p.get("prompt_template")
            if not tpl_val or not isinstance(tpl_val, str):
                raise ValueError(f"Prompt {pid} missing or invalid prompt_template")

            vars_decl = p.get("variables", [])
            if not isinstance(vars_decl, list) or not all(
                isinstance(x, str) for x in vars_decl
            ):
                raise ValueError(f"Prompt {pid} variables must be a list of strings")
            vars_decl = set(vars_decl)
            example = p.get("example", {}) or {}
            missing = vars_decl - set(example.keys())
            if missing:
                raise ValueError(f"Prompt {pid} example missing variables: {missing}")

            if "max_keywords" in vars_decl and not isinstance(
                example.get("max_keywords"), int
            ):
                raise ValueError(f"Prompt {pid} example max_keywords must be an integer")

            if "posts" in vars_decl and not isinstance(example.get("posts"), list):
                raise ValueError(f"Prompt {pid} example posts must be a list")

            try:
                _make_env(strict=False).from_string(tpl_val).render(**example)
            except Exception as e:
                raise ValueError(f"Prompt {pid} example failed to render: {e}")


def set_default_promptstore(
    path: Optional[str] = None,
    strict: Optional[bool] = None,
    validate_schema: Optional[bool] = None,
) -> "PromptStore":
    """Set and return the module-level default PromptStore instance."""
    global ps
    ps = PromptStore(path=path, strict=strict, validate_schema=validate_schema)
    return ps


ps = set_default_promptstore()
