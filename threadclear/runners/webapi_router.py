"""
WebAPI Router - FastAPI routes for ThreadClear

Contains the endpoint definitions and request handlers; server setup lives in
webapi_runner.py. Handlers log request ids and sizes, never conversation text.
"""

import base64
import binascii
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..__version__ import __version__
from ..api.schemas import (
    AnalysisRequest,
    AnalysisResponse,
    ErrorResponse,
    HealthResponse,
    ImageAnalysisRequest,
)
from ..core.engine import AnalysisResult, ConversationAnalysisEngine
from ..core.errors import InvalidRequestError, ProviderUnavailableError

logger = logging.getLogger(__name__)

ERROR_CODES = {
    400: "INVALID_REQUEST",
    503: "PROVIDER_UNAVAILABLE",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    503: {"model": ErrorResponse, "description": "AI provider unavailable"},
}


def _to_response(result: AnalysisResult) -> AnalysisResponse:
    return AnalysisResponse(
        request_id=result.request_id,
        capsule=result.capsule,
        draft_analysis=result.draft_analysis,
        stages=[stage.value for stage in result.stages],
        processing_time_ms=result.elapsed_ms,
    )


def create_webapi_router(engine: ConversationAnalysisEngine, start_time: float) -> APIRouter:
    """
    Create FastAPI router with all analysis endpoints

    Args:
        engine: Analysis engine shared by all requests
        start_time: Server start time for uptime calculation

    Returns:
        FastAPI router with all endpoints configured
    """
    router = APIRouter()

    @router.post("/analyze", response_model=AnalysisResponse, responses=ERROR_RESPONSES, tags=["Analysis"])
    async def analyze(request: AnalysisRequest):
        """Analyze conversation text"""
        options = request.options.apply_to(engine.config.analysis) if request.options else None
        try:
            result = await engine.analyze(
                request.conversation_text,
                source_type=request.source_type,
                parsing_mode=request.parsing_mode,
                options=options,
                draft=request.draft,
                draft_author=request.draft_author,
            )
        except InvalidRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _to_response(result)

    @router.post("/analyze/image", response_model=AnalysisResponse, responses=ERROR_RESPONSES,
                 tags=["Analysis"])
    async def analyze_image(request: ImageAnalysisRequest):
        """Transcribe a conversation screenshot and analyze it"""
        try:
            image_bytes = base64.b64decode(request.image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="imageBase64 is not valid base64")

        options = request.options.apply_to(engine.config.analysis) if request.options else None
        try:
            result = await engine.analyze_image(
                image_bytes,
                mime_type=request.mime_type,
                parsing_mode=request.parsing_mode,
                options=options,
                draft=request.draft,
            )
        except InvalidRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ProviderUnavailableError as e:
            logger.warning(f"Image transcription unavailable: {e}")
            raise HTTPException(status_code=503, detail="Image transcription is unavailable")
        return _to_response(result)

    @router.get("/health", response_model=HealthResponse, tags=["General"])
    async def health():
        """Service health check"""
        provider = engine.provider
        details = {"mode": "hybrid" if provider is not None else "regex"}
        if provider is not None:
            details["providerStatus"] = provider.status.value
            if provider.last_error:
                details["providerError"] = provider.last_error
        return HealthResponse(
            status="healthy",
            version=__version__,
            ai_provider=provider.get_provider_name() if provider is not None else None,
            uptime=round(time.time() - start_time, 3),
            details=details,
        )

    return router


def create_app(engine: ConversationAnalysisEngine, cors_origins: Optional[List[str]] = None,
               debug: bool = False) -> FastAPI:
    """Create and configure the FastAPI application around an engine"""
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down Web API server")
        await engine.close()

    app = FastAPI(
        title="ThreadClear API",
        description="Conversation analysis: unanswered questions, tension, misalignments and health",
        version=__version__,
        debug=debug,
        lifespan=lifespan,
    )

    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,  # Must be False when allow_origins=["*"]
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        body = ErrorResponse(error=str(exc.detail), error_code=ERROR_CODES.get(exc.status_code))
        return JSONResponse(status_code=exc.status_code, content=body.to_wire())

    app.include_router(create_webapi_router(engine, start_time))
    return app
