from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from prompt_ab.analysis import PrimaryMetric, VariantResult, WinnerResult, determine_winner
from prompt_ab.errors import (
    ABTestNotFoundError,
    ABTestStateError,
    InputNotFoundError,
    InvalidABTestError,
    VariantNotFoundError,
)
from prompt_ab.models import utc_now
from prompt_ab.prompts import record_ops
from prompt_ab.prompts.models import (
    DEFAULT_MODEL,
    ABTest,
    ABTestConfiguration,
    ABTestStatus,
    PromptStats,
    PromptVariable,
    PromptVariant,
    TestInput,
)
from prompt_ab.prompts.templates import extract_variables, interpolate_template

logger = logging.getLogger(__name__)

COMPLETED_TEST_RETENTION = timedelta(days=30)


class PromptManager:
    """In-memory registry of prompt variants, test inputs and A/B test definitions.

    Reads hand out deep copies; the registry is only changed through its
    methods. A/B tests move ``draft -> running -> paused/stopped/completed``
    and their variants and inputs are frozen while the test is live.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._variants: dict[str, PromptVariant] = {}
        self._inputs: dict[str, TestInput] = {}
        self._tests: dict[str, ABTest] = {}

    # Prompt variants

    def create_variant(
        self,
        name: str,
        template: str,
        *,
        description: str = "",
        variables: Iterable[PromptVariable | Mapping[str, Any]] | None = None,
        model: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        tags: Iterable[str] | None = None,
        parent_id: str | None = None,
        created_by: str = "system",
    ) -> PromptVariant:
        version = 1
        if parent_id is not None:
            version = self._require_variant(parent_id).version + 1

        now = self._clock()
        variant = PromptVariant(
            id=uuid.uuid4().hex,
            name=name,
            description=description,
            template=template,
            variables=list(variables) if variables is not None else extract_variables(template),
            version=version,
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
            created_by=created_by,
            tags=list(tags or []),
            model=model or DEFAULT_MODEL,
            parameters=record_ops.merged_parameters(parameters),
        )
        self._variants[variant.id] = variant
        logger.info("Created prompt variant %s (%s v%d)", variant.id, name, version)
        return variant.model_copy(deep=True)

    def update_variant(self, variant_id: str, updates: Mapping[str, Any]) -> PromptVariant:
        variant = self._require_variant(variant_id)
        updated = record_ops.merge_variant_updates(variant, updates, now=self._clock())
        self._variants[variant_id] = updated
        return updated.model_copy(deep=True)

    def get_variant(self, variant_id: str) -> PromptVariant | None:
        variant = self._variants.get(variant_id)
        return variant.model_copy(deep=True) if variant is not None else None

    def list_variants(
        self,
        *,
        tags: Iterable[str] | None = None,
        model: str | None = None,
        parent_id: str | None = None,
    ) -> list[PromptVariant]:
        wanted = set(tags or [])
        variants = [
            v
            for v in self._variants.values()
            if (not wanted or wanted.intersection(v.tags))
            and (model is None or v.model == model)
            and (parent_id is None or v.parent_id == parent_id)
        ]
        variants.sort(key=lambda v: v.updated_at, reverse=True)
        return [v.model_copy(deep=True) for v in variants]

    def delete_variant(self, variant_id: str) -> bool:
        if variant_id not in self._variants:
            return False
        in_use = [
            t.id
            for t in self._tests.values()
            if t.status in record_ops.LIVE_STATUSES and variant_id in t.variant_ids
        ]
        if in_use:
            raise ABTestStateError(
                f"Prompt variant {variant_id} is used by live A/B tests: {in_use}"
            )
        del self._variants[variant_id]
        logger.info("Deleted prompt variant %s", variant_id)
        return True

    def render(self, variant_id: str, input_id: str) -> str:
        """Fill a variant's template with one test input's variables."""
        variant = self._require_variant(variant_id)
        test_input = self._require_input(input_id)
        return interpolate_template(variant.template, test_input.variables)

    # Test inputs

    def create_test_input(
        self,
        prompt: str,
        *,
        variables: Mapping[str, str] | None = None,
        expected_output: str | None = None,
        category: str | None = None,
    ) -> TestInput:
        test_input = TestInput(
            id=uuid.uuid4().hex,
            prompt=prompt,
            variables=dict(variables or {}),
            expected_output=expected_output,
            category=category,
        )
        self._inputs[test_input.id] = test_input
        return test_input.model_copy(deep=True)

    def get_test_input(self, input_id: str) -> TestInput | None:
        test_input = self._inputs.get(input_id)
        return test_input.model_copy(deep=True) if test_input is not None else None

    def list_test_inputs(self, category: str | None = None) -> list[TestInput]:
        return [
            i.model_copy(deep=True)
            for i in self._inputs.values()
            if category is None or i.category == category
        ]

    # A/B tests

    def create_ab_test(
        self,
        name: str,
        variant_ids: Iterable[str],
        input_ids: Iterable[str],
        configuration: ABTestConfiguration | None = None,
        *,
        description: str = "",
        created_by: str = "system",
    ) -> ABTest:
        variant_ids = list(variant_ids)
        input_ids = list(input_ids)
        self._check_references(variant_ids, input_ids)

        configuration = (configuration or ABTestConfiguration()).model_copy(deep=True)
        if not configuration.traffic_split:
            configuration.traffic_split = record_ops.even_split(len(variant_ids))

        test = ABTest(
            id=uuid.uuid4().hex,
            name=name,
            description=description,
            variant_ids=variant_ids,
            input_ids=input_ids,
            configuration=configuration,
            created_at=self._clock(),
            created_by=created_by,
        )
        self._tests[test.id] = test
        logger.info("Created A/B test %s (%s) over %d variants", test.id, name, len(variant_ids))
        return test.model_copy(deep=True)

    def update_ab_test(self, test_id: str, updates: Mapping[str, Any]) -> ABTest:
        test = self._require_test(test_id)
        updated = record_ops.merge_test_updates(test, updates)
        self._check_references(updated.variant_ids, updated.input_ids)
        self._tests[test_id] = updated
        return updated.model_copy(deep=True)

    def get_ab_test(self, test_id: str) -> ABTest | None:
        test = self._tests.get(test_id)
        return test.model_copy(deep=True) if test is not None else None

    def list_ab_tests(
        self,
        *,
        status: ABTestStatus | str | None = None,
        created_by: str | None = None,
    ) -> list[ABTest]:
        wanted = ABTestStatus(status) if status is not None else None
        tests = [
            t
            for t in self._tests.values()
            if (wanted is None or t.status is wanted)
            and (created_by is None or t.created_by == created_by)
        ]
        tests.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in tests]

    def delete_ab_test(self, test_id: str) -> bool:
        test = self._tests.get(test_id)
        if test is None:
            return False
        if test.status in record_ops.LIVE_STATUSES:
            raise ABTestStateError(f"A/B test {test_id} is {test.status.value}; stop it first")
        del self._tests[test_id]
        return True

    def start_ab_test(self, test_id: str) -> ABTest:
        test = self._require_test(test_id)
        if test.status is not ABTestStatus.DRAFT:
            raise ABTestStateError(f"Cannot start A/B test {test_id} in {test.status.value} status")
        record_ops.validate_for_start(test)
        self._check_references(test.variant_ids, test.input_ids)
        return self._move(test, ABTestStatus.RUNNING)

    def pause_ab_test(self, test_id: str) -> ABTest:
        return self._move(self._require_test(test_id), ABTestStatus.PAUSED)

    def resume_ab_test(self, test_id: str) -> ABTest:
        test = self._require_test(test_id)
        if test.status is not ABTestStatus.PAUSED:
            raise ABTestStateError(f"Cannot resume A/B test {test_id} in {test.status.value} status")
        return self._move(test, ABTestStatus.RUNNING)

    def stop_ab_test(self, test_id: str) -> ABTest:
        return self._move(self._require_test(test_id), ABTestStatus.STOPPED)

    def complete_ab_test(self, test_id: str) -> ABTest:
        return self._move(self._require_test(test_id), ABTestStatus.COMPLETED)

    def record_results(self, test_id: str, results: Iterable[VariantResult]) -> ABTest:
        """Append evaluated calls to a running test; nothing is kept if any is rejected."""
        test = self._require_test(test_id)
        if test.status is not ABTestStatus.RUNNING:
            raise ABTestStateError(
                f"A/B test {test_id} only accepts results while running "
                f"(status: {test.status.value})"
            )
        results = [r.model_copy(deep=True) for r in results]
        for result in results:
            if result.variant_id not in test.variant_ids:
                raise InvalidABTestError(
                    f"Variant {result.variant_id} is not part of A/B test {test_id}"
                )
            if result.input_id is not None and result.input_id not in test.input_ids:
                raise InvalidABTestError(
                    f"Input {result.input_id} is not part of A/B test {test_id}"
                )
        test.results.extend(results)
        logger.debug("A/B test %s: +%d results", test_id, len(results))

        if test.configuration.stop_on_significance:
            outcome = determine_winner(
                test.variant_ids, test.results, test.configuration.primary_metric
            )
            if outcome.status == "significant":
                logger.info(
                    "A/B test %s reached significance; winner %s",
                    test_id,
                    outcome.winner_variant_id,
                )
                return self._move(test, ABTestStatus.COMPLETED)
        return test.model_copy(deep=True)

    def sample_plan(self, test_id: str) -> dict[str, int]:
        return record_ops.sample_plan(self._require_test(test_id))

    def analyze_ab_test(
        self,
        test_id: str,
        primary_metric: PrimaryMetric | str | None = None,
        *,
        strict: bool = False,
    ) -> WinnerResult:
        test = self._require_test(test_id)
        return determine_winner(
            test.variant_ids,
            test.results,
            primary_metric or test.configuration.primary_metric,
            strict=strict,
        )

    # Maintenance

    def get_stats(self) -> PromptStats:
        return record_ops.build_prompt_stats(
            len(self._variants), self._tests.values(), len(self._inputs)
        )

    def cleanup(self, max_age: timedelta = COMPLETED_TEST_RETENTION) -> int:
        """Drop completed tests whose completion is older than ``max_age``."""
        cutoff = self._clock() - max_age
        expired = [
            t.id
            for t in self._tests.values()
            if t.status is ABTestStatus.COMPLETED
            and t.completed_at is not None
            and t.completed_at < cutoff
        ]
        for test_id in expired:
            del self._tests[test_id]
        if expired:
            logger.info("Cleaned up %d completed A/B tests", len(expired))
        return len(expired)

    def _move(self, test: ABTest, target: ABTestStatus) -> ABTest:
        previous = test.status
        test.status = record_ops.resolve_transition(test, target)
        now = self._clock()
        if target is ABTestStatus.RUNNING and test.started_at is None:
            test.started_at = now
        if target in (ABTestStatus.STOPPED, ABTestStatus.COMPLETED):
            test.completed_at = now
        logger.info("A/B test %s: %s -> %s", test.id, previous.value, target.value)
        return test.model_copy(deep=True)

    def _check_references(self, variant_ids: Iterable[str], input_ids: Iterable[str]) -> None:
        for variant_id in variant_ids:
            self._require_variant(variant_id)
        for input_id in input_ids:
            self._require_input(input_id)

    def _require_variant(self, variant_id: str) -> PromptVariant:
        variant = self._variants.get(variant_id)
        if variant is None:
            raise VariantNotFoundError(variant_id)
        return variant

    def _require_input(self, input_id: str) -> TestInput:
        test_input = self._inputs.get(input_id)
        if test_input is None:
            raise InputNotFoundError(input_id)
        return test_input

    def _require_test(self, test_id: str) -> ABTest:
        test = self._tests.get(test_id)
        if test is None:
            raise ABTestNotFoundError(test_id)
        return test
