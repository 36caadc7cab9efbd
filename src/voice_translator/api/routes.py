"""FastAPI route handlers for the Voice Translator API."""

from typing import Any

import structlog
from fastapi import APIRouter, File, Form, HTTPException, Request, Response, UploadFile

from src.voice_translator.errors import (
    EngineError,
    InvalidInput,
    JobTimeout,
    NoViableLanguage,
    QueueSaturated,
    describe_error,
)
from src.voice_translator.languages import LANGUAGE_LOCALES
from src.voice_translator.models.api import TextTranslateRequest, TranslateResponse

logger = structlog.get_logger()


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [code for code in value.split(",") if code.strip()]


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidInput):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NoViableLanguage):
        return HTTPException(
            status_code=422, detail="Could not identify the input language"
        )
    if isinstance(exc, QueueSaturated):
        return HTTPException(status_code=503, detail="Service busy, try again later")
    if isinstance(exc, (EngineError, JobTimeout)):
        return HTTPException(
            status_code=502, detail=f"Upstream engine failed: {describe_error(exc)}"
        )
    return HTTPException(status_code=500, detail="Internal error")


def create_router() -> APIRouter:
    """Create the API router with all endpoints."""
    router = APIRouter()

    def _get_orchestrator(request: Request):
        return request.app.state.orchestrator

    @router.get("/health")
    async def health_check(request: Request) -> dict[str, Any]:
        services = {}
        for name, engine in request.app.state.engines.items():
            check = getattr(engine, "check_health", None)
            services[name] = await check() if check else True

        preferences = _get_orchestrator(request).preferences
        ping = getattr(preferences, "ping", None)
        services["preferences"] = await ping() if ping else True

        return {
            "status": "healthy" if all(services.values()) else "degraded",
            "services": services,
        }

    @router.get("/v1/queue/stats")
    async def queue_stats(request: Request) -> dict[str, Any]:
        stats = _get_orchestrator(request).get_queue_stats()
        return {name: s.model_dump() for name, s in stats.items()}

    @router.get("/metrics")
    async def metrics(request: Request) -> Response:
        """Prometheus exposition; queue gauges are refreshed on every scrape."""
        orchestrator = _get_orchestrator(request)
        orchestrator.get_queue_stats()
        return Response(
            content=orchestrator.metrics.render(), media_type=orchestrator.metrics.content_type
        )

    @router.get("/v1/metrics/summary")
    async def metrics_summary(request: Request) -> dict[str, Any]:
        orchestrator = _get_orchestrator(request)
        stats = orchestrator.get_queue_stats()
        return {
            **orchestrator.metrics.summary(),
            "queues": {name: s.model_dump() for name, s in stats.items()},
        }

    @router.get("/v1/languages")
    async def languages() -> dict[str, Any]:
        return {
            "languages": [
                {"code": code, "locale": locale} for code, locale in sorted(LANGUAGE_LOCALES.items())
            ]
        }

    @router.post("/v1/audio/translate", response_model=TranslateResponse)
    async def translate_audio(
        request: Request,
        file: UploadFile = File(...),
        source_lang: str = Form(default=None),
        target_langs: str = Form(default=None),
        response_mode: str = Form(default=None),
        user_id: str = Form(default=None),
    ) -> TranslateResponse:
        """Detect spoken language -> transcribe -> translate into every target -> optional TTS."""
        orchestrator = _get_orchestrator(request)
        audio = await file.read()
        try:
            job = await orchestrator.build_job(
                audio,
                user_id=user_id,
                source_language=source_lang,
                target_languages=_split(target_langs),
                response_mode=response_mode,
            )
            result = await orchestrator.submit_audio_job(job)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.error("Audio translation failed", error=str(e), filename=file.filename)
            raise _to_http_error(e) from e
        return TranslateResponse.from_result(result)

    @router.post("/v1/text/translate", response_model=TranslateResponse)
    async def translate_text(request: Request, req: TextTranslateRequest) -> TranslateResponse:
        orchestrator = _get_orchestrator(request)
        try:
            result = await orchestrator.translate_text(
                req.text, req.target_languages, req.source_language, req.response_mode
            )
        except Exception as e:
            logger.error("Text translation failed", error=str(e))
            raise _to_http_error(e) from e
        return TranslateResponse.from_result(result)

    @router.get("/")
    async def root(request: Request) -> dict[str, Any]:
        orchestrator = _get_orchestrator(request)
        return {
            "service": "Voice Translator",
            "version": request.app.version,
            "features": {
                "candidate_languages": orchestrator.detector.candidates,
                "early_exit_threshold": orchestrator.detector.threshold,
                "preferences": orchestrator.preferences is not None,
            },
            "endpoints": {
                "health": "/health",
                "audio_translate": "/v1/audio/translate",
                "text_translate": "/v1/text/translate",
                "languages": "/v1/languages",
                "queue_stats": "/v1/queue/stats",
                "metrics": "/metrics",
                "metrics_summary": "/v1/metrics/summary",
            },
        }

    return router
