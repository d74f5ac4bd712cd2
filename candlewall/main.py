import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status

from candlewall.config import Settings, get_settings
from candlewall.errors import ValidationError
from candlewall.logging_utils import setup_logging, RequestLoggingMiddleware, log_submission_data
from candlewall.message_store import MessageStore
from candlewall.metrics import (
    record_submission_outcome,
    record_moderation_verdict,
    get_metrics,
    get_metrics_content_type,
)
from candlewall.moderation import AnthropicClassifier, ModerationGateway
from candlewall.schemas import (
    CandleRequest,
    CandlesResponse,
    ErrorResponse,
    HealthResponse,
    ModerationResponse,
    SubmissionResponse,
)
from candlewall.service import CandleWall, SubmissionStatus
from candlewall.storage import SqlKeyValueStore, create_db_engine


logger = logging.getLogger(__name__)

SUBMISSION_STATUS_CODES = {
    SubmissionStatus.ACCEPTED: status.HTTP_201_CREATED,
    SubmissionStatus.VALIDATION_REJECTED: status.HTTP_400_BAD_REQUEST,
    SubmissionStatus.MODERATION_REJECTED: 422,
    SubmissionStatus.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def build_wall(settings: Settings) -> CandleWall:
    """
    Construct the candle wall and its collaborators from settings.

    Built once per process and reused across requests.
    """
    kv = SqlKeyValueStore(create_db_engine(settings.DATABASE_URL))
    store = MessageStore(
        kv,
        key=settings.CANDLES_KEY,
        max_length=settings.MAX_MESSAGE_LENGTH,
    )

    classifier = None
    if settings.ANTHROPIC_API_KEY:
        classifier = AnthropicClassifier(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.MODERATION_MODEL,
            timeout_seconds=settings.MODERATION_TIMEOUT_SECONDS,
            max_tokens=settings.MODERATION_MAX_TOKENS,
        )
    else:
        logger.warning("ANTHROPIC_API_KEY not set, every submission will be rejected")

    return CandleWall(store, ModerationGateway(classifier), max_length=settings.MAX_MESSAGE_LENGTH)


def get_wall(request: Request) -> CandleWall:
    return request.app.state.wall


def create_app(settings: Optional[Settings] = None, wall: Optional[CandleWall] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Defaults to the cached environment settings.
        wall: Prebuilt candle wall; built from settings at startup if omitted.
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        - Startup: build the candle wall if none was given, create tables
        - Shutdown: dispose the engine we created
        """
        owns_wall = app.state.wall is None
        if owns_wall:
            app.state.wall = build_wall(settings)
        app.state.wall.store.kv.init_db()
        yield
        if owns_wall:
            app.state.wall.store.kv.engine.dispose()

    app = FastAPI(
        title="Candle Wall API",
        description="Memorial wall of moderated candle messages",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.wall = wall
    app.add_middleware(RequestLoggingMiddleware)
    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # =========================================================================
    # Health Check Routes
    # =========================================================================

    @app.get("/health/live", response_model=HealthResponse)
    async def health_live() -> HealthResponse:
        """Liveness probe - always returns 200 once the app is running."""
        return HealthResponse(status="ok")

    @app.get("/health/ready", response_model=HealthResponse)
    def health_ready(response: Response, wall: CandleWall = Depends(get_wall)) -> HealthResponse:
        """
        Readiness probe - returns 200 only if:
        1. A moderation classifier is configured
        2. DB is reachable and schema is applied

        Otherwise returns 503 (Service Unavailable).
        """
        if wall.gateway.classifier is None:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return HealthResponse(
                status="not_ready",
                reason="Moderation classifier not configured"
            )

        if not wall.store.kv.ping():
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return HealthResponse(
                status="not_ready",
                reason="Database not reachable or schema not applied"
            )

        return HealthResponse(status="ready")

    # =========================================================================
    # Candle Routes
    # =========================================================================

    @app.get("/api/candles", response_model=CandlesResponse)
    def list_candles(wall: CandleWall = Depends(get_wall)) -> CandlesResponse:
        """
        List every candle message in the order it was lit.

        An empty wall is seeded with the starter messages; if storage is
        down the starter messages are returned without being stored.
        """
        messages = wall.list_messages()
        logger.info(f"GET /api/candles: returned {len(messages)} messages")
        return CandlesResponse(messages=messages, count=len(messages))

    @app.post(
        "/api/candles",
        response_model=SubmissionResponse,
        status_code=status.HTTP_201_CREATED,
        responses={
            400: {"model": SubmissionResponse, "description": "Invalid message"},
            422: {"model": SubmissionResponse, "description": "Message could not be approved"},
            503: {"model": SubmissionResponse, "description": "Candle could not be saved"},
        }
    )
    def light_candle(
        body: CandleRequest,
        request: Request,
        response: Response,
        wall: CandleWall = Depends(get_wall),
    ) -> SubmissionResponse:
        """
        Light a new candle: validate, moderate, then store.

        - 201: stored
        - 400: empty, whitespace-only or longer than 150 characters
        - 422: rejected by moderation, or moderation was unavailable
        - 503: approved but storage failed; nothing was saved
        """
        outcome = wall.submit_message(body.message)
        response.status_code = SUBMISSION_STATUS_CODES[outcome.status]

        verdict = None
        if outcome.status is SubmissionStatus.MODERATION_REJECTED:
            verdict = "UNSAFE"
        elif outcome.status is not SubmissionStatus.VALIDATION_REJECTED:
            verdict = "SAFE"
        if verdict is not None:
            record_moderation_verdict(verdict, degraded=outcome.moderation_error is not None)

        record_submission_outcome(outcome.status.value)
        log_submission_data(
            request=request,
            result=outcome.status.value,
            verdict=verdict,
            length=len(body.message.strip()) if isinstance(body.message, str) else None,
        )

        return SubmissionResponse(
            accepted=outcome.accepted,
            status=outcome.status.value,
            reason=outcome.reason,
        )

    @app.post(
        "/api/moderate",
        response_model=ModerationResponse,
        responses={400: {"model": ErrorResponse, "description": "Message is required"}},
    )
    def moderate(body: CandleRequest, wall: CandleWall = Depends(get_wall)) -> ModerationResponse:
        """Classify a message without storing it. Fails closed to UNSAFE."""
        try:
            result = wall.gateway.moderate(body.message)
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        record_moderation_verdict(result.verdict.value, degraded=result.degraded)
        return ModerationResponse(result=result.verdict.value)

    # =========================================================================
    # Metrics Route
    # =========================================================================

    @app.get("/metrics")
    async def metrics() -> Response:
        """Expose Prometheus-style metrics."""
        return Response(
            content=get_metrics(),
            media_type=get_metrics_content_type()
        )


app = create_app()
