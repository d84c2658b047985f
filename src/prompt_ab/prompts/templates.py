"""``{{name}}`` placeholder handling for prompt templates.

Placeholders without a matching variable are left in place so a partially
filled template can still be inspected or rendered again later.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from prompt_ab.prompts.models import PromptVariable

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def interpolate_template(template: str, variables: Mapping[str, Any]) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template)


def extract_variables(template: str) -> list[PromptVariable]:
    seen: dict[str, PromptVariable] = {}
    for match in _PLACEHOLDER.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen[name] = PromptVariable(name=name, description=f"Variable: {name}")
    return list(seen.values())


def missing_variables(template: str, variables: Mapping[str, Any]) -> list[str]:
    return [v.name for v in extract_variables(template) if v.name not in variables]
