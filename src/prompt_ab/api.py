from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from prompt_ab.analysis import (
    VariantComparison,
    VariantMetrics,
    VariantResult,
    WinnerResult,
    calculate_variant_metrics,
    compare_variants,
    determine_winner,
    resolve_metric,
)
from prompt_ab.config import Settings, get_settings, ledger_config_from
from prompt_ab.errors import (
    ABTestNotFoundError,
    ABTestStateError,
    InvalidABTestError,
    InvalidStatusTransitionError,
    InvalidUsageError,
    RecordNotFoundError,
    SessionNotFoundError,
    UnknownMetricError,
    VariantNotFoundError,
)
from prompt_ab.models import Session, SessionStats, SessionStatus, SessionSummary
from prompt_ab.pricing import CostBreakdown, CostCalculator, PricingTier, TokenUsage
from prompt_ab.prompts import (
    ABTest,
    ABTestConfiguration,
    ABTestStatus,
    PromptManager,
    PromptStats,
    PromptVariable,
    PromptVariant,
    TestInput,
    extract_variables,
    interpolate_template,
)
from prompt_ab.prompts.templates import missing_variables
from prompt_ab.session_store import SessionLedger, SessionSweeper, build_session_ledger

router = APIRouter(prefix="/api")


class CreateSessionRequest(BaseModel):
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateSessionRequest(BaseModel):
    metadata: dict[str, Any] | None = None
    status: SessionStatus | None = None


class UsageRequest(BaseModel):
    # Ranges are checked by the ledger, which raises InvalidUsageError (400).
    tokens: int
    cost: float
    trace_id: str | None = None


class SearchSessionsRequest(BaseModel):
    criteria: dict[str, Any] = Field(default_factory=dict)


class CleanupRequest(BaseModel):
    max_age_seconds: float | None = Field(default=None, ge=0)


class CleanupResponse(BaseModel):
    removed: int


class DeleteResponse(BaseModel):
    deleted: bool


class VariantMetricsRequest(BaseModel):
    variant_id: str
    results: list[VariantResult] = Field(default_factory=list)


class WinnerRequest(BaseModel):
    variants: list[str]
    results: list[VariantResult] = Field(default_factory=list)
    primary_metric: str | None = None


class CompareRequest(BaseModel):
    variant_a: str
    variant_b: str
    results: list[VariantResult] = Field(default_factory=list)
    metric: str = "cost"


class EstimateRequest(BaseModel):
    prompt: str
    model: str
    max_tokens: int = Field(default=100, ge=0)


class CreateVariantRequest(BaseModel):
    name: str = Field(min_length=1)
    template: str = Field(min_length=1)
    description: str = ""
    variables: list[PromptVariable] | None = None
    model: str | None = None
    parameters: dict[str, Any] | None = None
    tags: list[str] | None = None
    parent_id: str | None = None


class UpdateVariantRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    template: str | None = None
    variables: list[PromptVariable] | None = None
    model: str | None = None
    parameters: dict[str, Any] | None = None
    tags: list[str] | None = None


class InterpolateRequest(BaseModel):
    template: str
    variables: dict[str, Any] = Field(default_factory=dict)


class InterpolateResponse(BaseModel):
    interpolated: str
    variables: list[PromptVariable]
    missing: list[str]


class CreateTestInputRequest(BaseModel):
    prompt: str = Field(min_length=1)
    variables: dict[str, str] = Field(default_factory=dict)
    expected_output: str | None = None
    category: str | None = None


class CreateABTestRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    variant_ids: list[str]
    input_ids: list[str]
    configuration: ABTestConfiguration | None = None
    created_by: str = "system"


class UpdateABTestRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    variant_ids: list[str] | None = None
    input_ids: list[str] | None = None
    configuration: ABTestConfiguration | None = None


class RecordResultsRequest(BaseModel):
    results: list[VariantResult]


def get_ledger(request: Request) -> SessionLedger:
    return request.app.state.ledger


def get_calculator(request: Request) -> CostCalculator:
    return request.app.state.calculator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_prompts(request: Request) -> PromptManager:
    return request.app.state.prompts


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.post("/sessions", response_model=Session, status_code=201)
def create_session(
    body: CreateSessionRequest, ledger: SessionLedger = Depends(get_ledger)
):
    return ledger.create_session(body.metadata)


@router.get("/sessions", response_model=list[Session])
def list_sessions(active: bool = False, ledger: SessionLedger = Depends(get_ledger)):
    if active:
        return ledger.get_active_sessions()
    return ledger.list_sessions()


@router.get("/sessions/stats", response_model=SessionStats)
def session_stats(ledger: SessionLedger = Depends(get_ledger)):
    return ledger.get_stats()


@router.post("/sessions/search", response_model=list[Session])
def search_sessions(
    body: SearchSessionsRequest, ledger: SessionLedger = Depends(get_ledger)
):
    return ledger.find_sessions(body.criteria)


@router.post("/sessions/cleanup", response_model=CleanupResponse)
def cleanup_sessions(
    body: CleanupRequest,
    ledger: SessionLedger = Depends(get_ledger),
    settings: Settings = Depends(get_app_settings),
):
    if body.max_age_seconds is not None:
        max_age = timedelta(seconds=body.max_age_seconds)
    else:
        max_age = ledger_config_from(settings).max_age
    return CleanupResponse(removed=ledger.cleanup_sessions(max_age))


@router.get("/sessions/{session_id}", response_model=Session)
def get_session(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    session = ledger.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


@router.patch("/sessions/{session_id}", response_model=Session)
def update_session(
    session_id: str,
    body: UpdateSessionRequest,
    ledger: SessionLedger = Depends(get_ledger),
):
    return ledger.update_session(session_id, body.model_dump(exclude_none=True))


@router.get("/sessions/{session_id}/summary", response_model=SessionSummary)
def session_summary(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    summary = ledger.get_session_summary(session_id)
    if summary is None:
        raise SessionNotFoundError(session_id)
    return summary


@router.post("/sessions/{session_id}/usage", response_model=Session)
def add_usage(
    session_id: str, body: UsageRequest, ledger: SessionLedger = Depends(get_ledger)
):
    return ledger.add_usage(session_id, body.tokens, body.cost, body.trace_id)


@router.post("/sessions/{session_id}/turns", response_model=Session)
def increment_turn(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    return ledger.increment_turn(session_id)


@router.post("/sessions/{session_id}/complete", response_model=Session)
def complete_session(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    return ledger.complete_session(session_id)


@router.post("/sessions/{session_id}/abort", response_model=Session)
def abort_session(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    return ledger.abort_session(session_id)


@router.delete("/sessions/{session_id}", response_model=DeleteResponse)
def delete_session(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    if not ledger.delete_session(session_id):
        raise SessionNotFoundError(session_id)
    return DeleteResponse(deleted=True)


@router.post("/variants/metrics", response_model=VariantMetrics)
def variant_metrics(body: VariantMetricsRequest):
    return calculate_variant_metrics(body.results, body.variant_id)


@router.post("/variants/winner", response_model=WinnerResult)
def variant_winner(
    body: WinnerRequest, settings: Settings = Depends(get_app_settings)
):
    return determine_winner(
        body.variants,
        body.results,
        body.primary_metric or settings.default_primary_metric,
        strict=settings.strict_primary_metric,
    )


@router.post("/variants/compare", response_model=VariantComparison)
def variant_compare(
    body: CompareRequest, settings: Settings = Depends(get_app_settings)
):
    metric = resolve_metric(body.metric, strict=settings.strict_primary_metric)
    return compare_variants(body.variant_a, body.variant_b, body.results, metric)


@router.get("/pricing", response_model=dict[str, PricingTier])
def pricing_table(calculator: CostCalculator = Depends(get_calculator)):
    return calculator.get_all_pricing()


@router.post("/pricing/cost", response_model=CostBreakdown)
def pricing_cost(body: TokenUsage, calculator: CostCalculator = Depends(get_calculator)):
    return calculator.calculate_cost(body)


@router.post("/pricing/estimate", response_model=CostBreakdown)
def pricing_estimate(
    body: EstimateRequest, calculator: CostCalculator = Depends(get_calculator)
):
    if not body.prompt:
        raise HTTPException(status_code=400, detail="prompt must not be empty")
    return calculator.estimate_cost(body.prompt, body.model, body.max_tokens)


@router.post("/prompts", response_model=PromptVariant, status_code=201)
def create_prompt(body: CreateVariantRequest, prompts: PromptManager = Depends(get_prompts)):
    return prompts.create_variant(
        body.name,
        body.template,
        description=body.description,
        variables=body.variables,
        model=body.model,
        parameters=body.parameters,
        tags=body.tags,
        parent_id=body.parent_id,
    )


@router.get("/prompts", response_model=list[PromptVariant])
def list_prompts(
    tags: str | None = None,
    model: str | None = None,
    parent_id: str | None = None,
    prompts: PromptManager = Depends(get_prompts),
):
    tag_list = [t for t in tags.split(",") if t] if tags else None
    return prompts.list_variants(tags=tag_list, model=model, parent_id=parent_id)


@router.get("/prompts/stats", response_model=PromptStats)
def prompt_stats(prompts: PromptManager = Depends(get_prompts)):
    return prompts.get_stats()


@router.post("/prompts/interpolate", response_model=InterpolateResponse)
def interpolate_prompt(body: InterpolateRequest):
    return InterpolateResponse(
        interpolated=interpolate_template(body.template, body.variables),
        variables=extract_variables(body.template),
        missing=missing_variables(body.template, body.variables),
    )


@router.get("/prompts/{variant_id}", response_model=PromptVariant)
def get_prompt(variant_id: str, prompts: PromptManager = Depends(get_prompts)):
    variant = prompts.get_variant(variant_id)
    if variant is None:
        raise VariantNotFoundError(variant_id)
    return variant


@router.patch("/prompts/{variant_id}", response_model=PromptVariant)
def update_prompt(
    variant_id: str,
    body: UpdateVariantRequest,
    prompts: PromptManager = Depends(get_prompts),
):
    return prompts.update_variant(variant_id, body.model_dump(exclude_none=True))


@router.delete("/prompts/{variant_id}", response_model=DeleteResponse)
def delete_prompt(variant_id: str, prompts: PromptManager = Depends(get_prompts)):
    if not prompts.delete_variant(variant_id):
        raise VariantNotFoundError(variant_id)
    return DeleteResponse(deleted=True)


@router.post("/test-inputs", response_model=TestInput, status_code=201)
def create_test_input(
    body: CreateTestInputRequest, prompts: PromptManager = Depends(get_prompts)
):
    return prompts.create_test_input(
        body.prompt,
        variables=body.variables,
        expected_output=body.expected_output,
        category=body.category,
    )


@router.get("/test-inputs", response_model=list[TestInput])
def list_test_inputs(category: str | None = None, prompts: PromptManager = Depends(get_prompts)):
    return prompts.list_test_inputs(category)


@router.post("/ab-tests", response_model=ABTest, status_code=201)
def create_ab_test(body: CreateABTestRequest, prompts: PromptManager = Depends(get_prompts)):
    return prompts.create_ab_test(
        body.name,
        body.variant_ids,
        body.input_ids,
        body.configuration,
        description=body.description,
        created_by=body.created_by,
    )


@router.get("/ab-tests", response_model=list[ABTest])
def list_ab_tests(
    status: ABTestStatus | None = None,
    created_by: str | None = None,
    prompts: PromptManager = Depends(get_prompts),
):
    return prompts.list_ab_tests(status=status, created_by=created_by)


@router.post("/ab-tests/cleanup", response_model=CleanupResponse)
def cleanup_ab_tests(body: CleanupRequest, prompts: PromptManager = Depends(get_prompts)):
    if body.max_age_seconds is None:
        return CleanupResponse(removed=prompts.cleanup())
    return CleanupResponse(removed=prompts.cleanup(timedelta(seconds=body.max_age_seconds)))


@router.get("/ab-tests/{test_id}", response_model=ABTest)
def get_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    test = prompts.get_ab_test(test_id)
    if test is None:
        raise ABTestNotFoundError(test_id)
    return test


@router.patch("/ab-tests/{test_id}", response_model=ABTest)
def update_ab_test(
    test_id: str,
    body: UpdateABTestRequest,
    prompts: PromptManager = Depends(get_prompts),
):
    return prompts.update_ab_test(test_id, body.model_dump(exclude_none=True))


@router.delete("/ab-tests/{test_id}", response_model=DeleteResponse)
def delete_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    if not prompts.delete_ab_test(test_id):
        raise ABTestNotFoundError(test_id)
    return DeleteResponse(deleted=True)


@router.post("/ab-tests/{test_id}/start", response_model=ABTest)
def start_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.start_ab_test(test_id)


@router.post("/ab-tests/{test_id}/pause", response_model=ABTest)
def pause_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.pause_ab_test(test_id)


@router.post("/ab-tests/{test_id}/resume", response_model=ABTest)
def resume_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.resume_ab_test(test_id)


@router.post("/ab-tests/{test_id}/stop", response_model=ABTest)
def stop_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.stop_ab_test(test_id)


@router.post("/ab-tests/{test_id}/complete", response_model=ABTest)
def complete_ab_test(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.complete_ab_test(test_id)


@router.get("/ab-tests/{test_id}/plan", response_model=dict[str, int])
def ab_test_plan(test_id: str, prompts: PromptManager = Depends(get_prompts)):
    return prompts.sample_plan(test_id)


@router.post("/ab-tests/{test_id}/results", response_model=ABTest)
def record_ab_test_results(
    test_id: str,
    body: RecordResultsRequest,
    prompts: PromptManager = Depends(get_prompts),
):
    return prompts.record_results(test_id, body.results)


@router.get("/ab-tests/{test_id}/results", response_model=WinnerResult)
def ab_test_results(
    test_id: str,
    primary_metric: str | None = None,
    prompts: PromptManager = Depends(get_prompts),
    settings: Settings = Depends(get_app_settings),
):
    return prompts.analyze_ab_test(
        test_id, primary_metric, strict=settings.strict_primary_metric
    )


def _error_response(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = ledger_config_from(app.state.settings)
    app.state.sweeper = None
    task: asyncio.Task | None = None
    if config.sweeper_enabled:
        app.state.sweeper = SessionSweeper.from_config(app.state.ledger, config)
        task = asyncio.create_task(app.state.sweeper.run())
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(
    ledger: SessionLedger | None = None,
    calculator: CostCalculator | None = None,
    settings: Settings | None = None,
    prompts: PromptManager | None = None,
) -> FastAPI:
    app = FastAPI(title="Prompt A/B API", lifespan=_lifespan)
    app.state.ledger = ledger if ledger is not None else build_session_ledger()
    app.state.calculator = calculator if calculator is not None else CostCalculator()
    app.state.settings = settings if settings is not None else get_settings()
    app.state.prompts = prompts if prompts is not None else PromptManager()

    app.add_exception_handler(SessionNotFoundError, _error_response(404))
    app.add_exception_handler(InvalidStatusTransitionError, _error_response(409))
    app.add_exception_handler(InvalidUsageError, _error_response(400))
    app.add_exception_handler(UnknownMetricError, _error_response(400))
    app.add_exception_handler(RecordNotFoundError, _error_response(404))
    app.add_exception_handler(InvalidABTestError, _error_response(400))
    app.add_exception_handler(ABTestStateError, _error_response(409))

    @app.get("/", include_in_schema=False)
    async def root_redirect():
        return RedirectResponse(url="/docs")

    app.include_router(router)
    return app


app = create_app()
