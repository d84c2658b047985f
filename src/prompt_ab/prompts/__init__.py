"""Prompt variants, test inputs and A/B test definitions."""

from prompt_ab.prompts.manager import PromptManager
from prompt_ab.prompts.models import (
    ABTest,
    ABTestConfiguration,
    ABTestStatus,
    PromptStats,
    PromptVariable,
    PromptVariant,
    TestInput,
)
from prompt_ab.prompts.templates import extract_variables, interpolate_template

__all__ = [
    "ABTest",
    "ABTestConfiguration",
    "ABTestStatus",
    "PromptManager",
    "PromptStats",
    "PromptVariable",
    "PromptVariant",
    "TestInput",
    "extract_variables",
    "interpolate_template",
]
