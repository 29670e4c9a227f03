import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from scamlens.config import Settings, settings as default_settings
from scamlens.pipelines.analyze_pipeline import ScamAnalyzer
from scamlens.schemas.analyze_schemas import AnalysisRequest
from scamlens.services.content_fetcher import ContentFetcher
from scamlens.services.llm_client import LLMClient, build_llm_client
from scamlens.utils.logging_config import StructuredLogger, init_logging, metrics, request_id_var

logger = StructuredLogger(__name__)

VERSION = "0.1.0"

ALLOWED_METHODS = ["POST"]

NO_CONTENT_ERROR = "No content provided for analysis."


def create_app(
    app_settings: Optional[Settings] = None,
    llm_client: Optional[LLMClient] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> FastAPI:
    """
    Build the ASGI app.

    The model client is created once at startup; a missing API key aborts
    startup instead of failing on the first request. Tests inject their
    own llm_client and fetcher.
    """
    cfg = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = llm_client or build_llm_client(cfg)
        app.state.analyzer = ScamAnalyzer(cfg, client, fetcher=fetcher)
        logger.info("ScamLens API started", environment=cfg.environment, provider=client.provider)
        yield
        logger.info("ScamLens API stopped")

    app = FastAPI(
        title="ScamLens API",
        version=VERSION,
        description="LLM-backed scam checker for messages, links and screenshots",
        docs_url="/docs" if cfg.debug else None,
        redoc_url="/redoc" if cfg.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=False,
        allow_methods=ALLOWED_METHODS,
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if cfg.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/status")
    def status_info():
        """Version, active model and in-process counters."""
        return {
            "status": "ok",
            "version": VERSION,
            "environment": cfg.environment,
            "llm_provider": cfg.llm_provider,
            "llm_model": cfg.llm_model,
            "metrics": metrics.get_stats(),
        }

    async def analyze(request: Request):
        if request.method not in ALLOWED_METHODS:
            metrics.increment("analyze.rejected.method")
            return PlainTextResponse(
                "Method Not Allowed",
                status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
                headers={"Allow": ", ".join(ALLOWED_METHODS)},
            )

        try:
            payload = await request.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            metrics.increment("analyze.rejected.input")
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Request body must be a JSON object."},
            )

        try:
            analysis_request = AnalysisRequest.model_validate(payload)
        except ValidationError as e:
            metrics.increment("analyze.rejected.input")
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": "Invalid request body.",
                    "details": e.errors(include_url=False, include_context=False, include_input=False),
                },
            )

        if not analysis_request.has_content():
            metrics.increment("analyze.rejected.input")
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": NO_CONTENT_ERROR},
            )

        metrics.increment("analyze.requests")
        outcome = await request.app.state.analyzer.analyze(analysis_request)
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    # No method list: every verb, HEAD and custom ones included, reaches analyze
    app.add_route("/api/analyze", analyze)

    return app


init_logging()

app = create_app()
