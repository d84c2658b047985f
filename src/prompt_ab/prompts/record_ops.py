from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from prompt_ab.errors import ABTestStateError, InvalidABTestError
from prompt_ab.prompts.models import (
    DEFAULT_PARAMETERS,
    ABTest,
    ABTestStatus,
    PromptStats,
    PromptVariant,
)

logger = logging.getLogger(__name__)

VARIANT_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "template", "variables", "tags", "model", "parameters"}
)
TEST_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "variant_ids", "input_ids", "configuration"}
)
LOCKED_WHILE_LIVE = frozenset({"variant_ids", "input_ids", "configuration"})
LIVE_STATUSES = frozenset({ABTestStatus.RUNNING, ABTestStatus.PAUSED})

ALLOWED_TRANSITIONS: dict[ABTestStatus, frozenset[ABTestStatus]] = {
    ABTestStatus.DRAFT: frozenset({ABTestStatus.RUNNING}),
    ABTestStatus.RUNNING: frozenset(
        {ABTestStatus.PAUSED, ABTestStatus.STOPPED, ABTestStatus.COMPLETED}
    ),
    ABTestStatus.PAUSED: frozenset({ABTestStatus.RUNNING, ABTestStatus.STOPPED}),
    ABTestStatus.STOPPED: frozenset(),
    ABTestStatus.COMPLETED: frozenset(),
}

SPLIT_TOLERANCE = 0.01


def _ignored(
    kind: str, record_id: str, updates: Mapping[str, Any], allowed: frozenset[str]
) -> None:
    ignored = sorted(key for key in updates if key not in allowed)
    if ignored:
        logger.warning("Ignoring non-updatable %s fields for %s: %s", kind, record_id, ignored)


def merged_parameters(parameters: Mapping[str, Any] | None) -> dict[str, Any]:
    return {**DEFAULT_PARAMETERS, **(parameters or {})}


def merge_variant_updates(
    variant: PromptVariant, updates: Mapping[str, Any], *, now: datetime
) -> PromptVariant:
    _ignored("variant", variant.id, updates, VARIANT_UPDATABLE_FIELDS)
    data = variant.model_dump()
    for key in VARIANT_UPDATABLE_FIELDS.intersection(updates):
        value = updates[key]
        if value is None:
            continue
        if key == "parameters":
            data["parameters"] = {**data["parameters"], **value}
        else:
            data[key] = value
    data["updated_at"] = now
    return PromptVariant.model_validate(data)


def merge_test_updates(test: ABTest, updates: Mapping[str, Any]) -> ABTest:
    _ignored("A/B test", test.id, updates, TEST_UPDATABLE_FIELDS)
    if test.status in LIVE_STATUSES:
        locked = sorted(LOCKED_WHILE_LIVE.intersection(updates))
        if locked:
            raise ABTestStateError(
                f"Cannot modify {', '.join(locked)} of A/B test {test.id} "
                f"while it is {test.status.value}"
            )
    data = test.model_dump()
    for key in TEST_UPDATABLE_FIELDS.intersection(updates):
        if updates[key] is not None:
            data[key] = updates[key]
    return ABTest.model_validate(data)


def even_split(count: int) -> list[float]:
    if count <= 0:
        return []
    return [100 / count] * count


def validate_for_start(test: ABTest) -> None:
    """Raise ``InvalidABTestError`` unless the test can be started."""
    variants = len(test.variant_ids)
    if variants < 2:
        raise InvalidABTestError(f"A/B test {test.id} requires at least 2 variants")

    split = test.configuration.traffic_split
    if len(split) != variants:
        raise InvalidABTestError(
            f"Traffic split of A/B test {test.id} has {len(split)} entries "
            f"for {variants} variants"
        )
    if abs(sum(split) - 100) > SPLIT_TOLERANCE:
        raise InvalidABTestError(
            f"Traffic split of A/B test {test.id} must sum to 100 (got {sum(split):g})"
        )

    if not test.input_ids:
        raise InvalidABTestError(f"A/B test {test.id} requires at least one test input")

    requested = test.configuration.min_sample_size * variants
    if requested > len(test.input_ids) * 10:
        logger.warning(
            "A/B test %s requests %d samples from %d inputs; expect repeated inputs",
            test.id,
            requested,
            len(test.input_ids),
        )


def resolve_transition(test: ABTest, target: ABTestStatus) -> ABTestStatus:
    if target not in ALLOWED_TRANSITIONS[test.status]:
        raise ABTestStateError(
            f"A/B test {test.id} cannot move from {test.status.value!r} to {target.value!r}"
        )
    return target


def sample_plan(test: ABTest) -> dict[str, int]:
    """Samples to collect per variant, ``min_sample_size`` weighted by traffic share."""
    split = test.configuration.traffic_split or even_split(len(test.variant_ids))
    return {
        # 30 * (100 / 3) / 100 == 10.000000000000002
        variant_id: math.ceil(round(test.configuration.min_sample_size * share / 100, 9))
        for variant_id, share in zip(test.variant_ids, split)
    }


def build_prompt_stats(
    variant_count: int, tests: Iterable[ABTest], input_count: int
) -> PromptStats:
    tests = list(tests)
    return PromptStats(
        total_variants=variant_count,
        total_tests=len(tests),
        active_tests=sum(1 for t in tests if t.status is ABTestStatus.RUNNING),
        total_inputs=input_count,
    )
