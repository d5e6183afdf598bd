"""FastAPI application exposing routing, synthesis and model administration."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..adapters.base import ExampleStore, ModelStore
from ..config.settings import get_api_config
from ..models.core import MODEL_KINDS, AcceptanceStats, CandidatePassage
from ..services.inference import InferenceEngine
from ..services.knowledge_synthesis import KnowledgeSynthesizer
from ..services.router import QuestionRouter
from ..services.training_pipeline import ModelTrainingPipeline, build_training_examples
from ..utils.error_handling import (
    ErrorContext,
    ErrorSeverity,
    ModelStoreError,
    WineRouterError,
    get_error_handler,
)
from ..utils.logging import get_logger
from ..utils.monitoring import MetricsCollector
from . import health


@dataclass(frozen=True)
class AppDependencies:
    router: QuestionRouter
    engine: InferenceEngine
    pipeline: ModelTrainingPipeline
    model_store: ModelStore
    example_store: ExampleStore
    synthesizer: KnowledgeSynthesizer
    metrics: MetricsCollector


class CandidateModel(BaseModel):
    text: str
    score: float
    source_id: Optional[str] = None


class AcceptanceModel(BaseModel):
    global_rate: float = Field(0.0, ge=0.0, le=1.0)
    user_rate: float = Field(0.0, ge=0.0, le=1.0)


class RouteRequest(BaseModel):
    question: str = Field(..., min_length=1, description="Free-text wine question")
    candidates: Optional[List[CandidateModel]] = Field(
        None, description="Pre-fetched passages; omit to query the retriever"
    )
    acceptance: Optional[AcceptanceModel] = None


class RerankedCandidateModel(BaseModel):
    text: str
    score: float
    original_score: float
    source_id: Optional[str] = None


class RouteResponse(BaseModel):
    path: str
    redirect_non_wine: bool
    route_confidence: float
    intent_scores: Dict[str, float]
    answer: Optional[str] = None
    synthesis_shape: Optional[str] = None
    candidates: List[RerankedCandidateModel]
    context: List[RerankedCandidateModel]
    record: Dict[str, Any]


class SynthesizeRequest(BaseModel):
    question: str = Field(..., min_length=1)


class SynthesizeResponse(BaseModel):
    answer: str
    can_answer: bool
    shape: Optional[str] = None


class RetrainRequest(BaseModel):
    kinds: Optional[List[str]] = Field(None, description="Model kinds to retrain; defaults to all")
    created_by: Optional[str] = None


class PromoteRequest(BaseModel):
    kind: str
    version: int = Field(..., ge=1)


class FeedbackRequest(BaseModel):
    record: Dict[str, Any] = Field(..., description="Log record returned by POST /route")
    decision: Optional[str] = Field(None, description="accepted, edited, rejected, ...")
    edited: bool = False


def _check_kind(kind: str) -> None:
    if kind not in MODEL_KINDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown model kind '{kind}'; expected one of {MODEL_KINDS}",
        )


def create_app(dependencies: AppDependencies, title: Optional[str] = None) -> FastAPI:
    logger = get_logger("api")
    app = FastAPI(title=title or get_api_config().get("title", "Wine Question Router"), version="0.1.0")
    app.state.dependencies = dependencies
    app.include_router(health.router)

    @app.exception_handler(WineRouterError)
    async def handle_router_error(request: Request, exc: WineRouterError) -> JSONResponse:
        response = get_error_handler().handle_error(
            exc, ErrorContext(component="api", operation=request.url.path)
        )
        status_code = (
            status.HTTP_500_INTERNAL_SERVER_ERROR
            if response.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL)
            else status.HTTP_409_CONFLICT
        )
        body = response.to_dict()
        body.pop("details", None)
        return JSONResponse(status_code=status_code, content=body)

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    @app.post("/route", response_model=RouteResponse)
    async def route_question(
        payload: RouteRequest, deps: AppDependencies = Depends(get_dependencies)
    ) -> RouteResponse:
        candidates = None
        if payload.candidates is not None:
            candidates = [
                CandidatePassage(text=c.text, score=c.score, source_id=c.source_id) for c in payload.candidates
            ]
        acceptance = None
        if payload.acceptance is not None:
            acceptance = AcceptanceStats(
                global_rate=payload.acceptance.global_rate, user_rate=payload.acceptance.user_rate
            )

        try:
            outcome = await deps.router.route(payload.question, candidates=candidates, acceptance=acceptance)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        return RouteResponse(
            path=outcome.path.value,
            redirect_non_wine=outcome.redirect_non_wine,
            route_confidence=outcome.route_confidence,
            intent_scores=outcome.intent_scores.as_dict(),
            answer=outcome.synthesis.answer if outcome.synthesis.can_answer else None,
            synthesis_shape=outcome.synthesis.shape,
            candidates=[RerankedCandidateModel(**c.to_dict()) for c in outcome.candidates],
            context=[RerankedCandidateModel(**c.to_dict()) for c in outcome.context],
            record=outcome.to_log_record(),
        )

    @app.post("/synthesize", response_model=SynthesizeResponse)
    async def synthesize(
        payload: SynthesizeRequest, deps: AppDependencies = Depends(get_dependencies)
    ) -> SynthesizeResponse:
        result = deps.synthesizer.synthesize(payload.question)
        return SynthesizeResponse(answer=result.answer, can_answer=result.can_answer, shape=result.shape)

    @app.get("/models")
    async def list_models(deps: AppDependencies = Depends(get_dependencies)) -> Dict[str, Any]:
        artifacts = [
            {
                "kind": artifact.kind,
                "version": artifact.version,
                "created_at": artifact.created_at.isoformat(),
                "created_by": artifact.created_by,
                "metrics": artifact.metrics,
            }
            for artifact in deps.model_store.list_artifacts()
        ]
        return {
            "artifacts": artifacts,
            "active_versions": deps.model_store.get_active_versions(),
            "inference": deps.engine.get_status(),
        }

    @app.post("/feedback", status_code=status.HTTP_201_CREATED)
    async def record_feedback(
        payload: FeedbackRequest, deps: AppDependencies = Depends(get_dependencies)
    ) -> Dict[str, Any]:
        try:
            examples = build_training_examples(payload.record, payload.decision, edited=payload.edited)
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid record: {e}")
        added = deps.example_store.add_examples(examples)
        deps.metrics.increment_counter("feedback_examples", added)
        return {"added": added, "kinds": [example.kind for example in examples]}

    @app.post("/admin/retrain")
    async def retrain(
        payload: RetrainRequest, deps: AppDependencies = Depends(get_dependencies)
    ) -> Dict[str, Any]:
        for kind in payload.kinds or []:
            _check_kind(kind)
        with deps.metrics.timer("retrain_seconds"):
            summary = deps.pipeline.retrain_all(kinds=payload.kinds, created_by=payload.created_by)
        summary["loaded_versions"] = deps.engine.reload()
        logger.info("Retrain requested via API: %s", summary["active_versions"])
        return summary

    @app.post("/admin/promote")
    async def promote(
        payload: PromoteRequest, deps: AppDependencies = Depends(get_dependencies)
    ) -> Dict[str, Any]:
        _check_kind(payload.kind)
        try:
            active_versions = deps.pipeline.promote(payload.kind, payload.version)
        except ModelStoreError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        return {"active_versions": active_versions, "loaded_versions": deps.engine.reload()}

    @app.get("/metrics")
    async def metrics(deps: AppDependencies = Depends(get_dependencies)) -> Dict[str, Any]:
        return {
            **deps.metrics.get_all_metrics(),
            "errors": get_error_handler().get_error_statistics(),
        }

    return app
