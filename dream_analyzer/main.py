import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .adapters import StageAdapters, resolve_adapters
from .config import Settings, get_settings
from .errors import AnalysisError
from .models import SUPPORTED_LANGUAGES, Demographics
from .pipeline import orchestrate

log = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dream_text: str = Field(alias="dreamText")
    language: str
    demographics: Optional[dict] = None


class AnalyzeResponse(BaseModel):
    success: bool
    data: dict


def create_app(
    adapters: Optional[StageAdapters] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the HTTP app.

    Without explicit *adapters* they are loaded from
    ``settings.adapters_path``; when neither is available ``/analyze``
    answers 503.  ``DREAM_ANALYZER_QUANTITATIVE=ollama`` swaps in the
    Ollama-backed quantitative stage.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(message)s")

    adapters = resolve_adapters(settings, adapters)

    app = FastAPI(title="Dream Analyzer",
                  description="Merges dream-analysis stages into one validated bundle")
    app.state.adapters = adapters
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = await request.body()
        log.error("422 validation error on %s %s", request.method, request.url.path)
        log.error("Request body: %s", body.decode(errors="replace")[:2000])
        log.error("Validation errors: %s", exc.errors())
        return JSONResponse(status_code=422, content={
            "detail": exc.errors(),
            "body_preview": body.decode(errors="replace")[:500],
        })

    @app.post("/analyze", response_model=AnalyzeResponse)
    async def analyze_dream(request: AnalyzeRequest):
        cfg: Settings = app.state.settings
        log.info("POST /analyze language=%s text_length=%d demographics=%s",
                 request.language, len(request.dream_text), request.demographics is not None)

        if request.language not in SUPPORTED_LANGUAGES:
            raise HTTPException(status_code=400, detail='language must be either "tr" or "en"')
        if len(request.dream_text) < cfg.min_text_length:
            raise HTTPException(
                status_code=400,
                detail=f"dreamText must be at least {cfg.min_text_length} characters long",
            )
        if len(request.dream_text) > cfg.max_text_length:
            raise HTTPException(
                status_code=400,
                detail=f"dreamText must be less than {cfg.max_text_length} characters",
            )
        if app.state.adapters is None:
            raise HTTPException(status_code=503, detail="No analysis stages configured")

        demographics = (
            Demographics.from_dict(request.demographics) if request.demographics else None
        )

        try:
            result = await orchestrate(
                request.dream_text,
                request.language,
                demographics,
                adapters=app.state.adapters,
                settings=cfg,
            )
        except AnalysisError as e:
            log.error("Dream analysis failed: %s", e)
            return JSONResponse(status_code=500, content={
                "error": "Analysis failed",
                "message": str(e),
            })

        log.info("Dream analysis completed: stage=%s labels=%d violations=%d",
                 result.bundle.sleep.stage, len(result.bundle.emotions.labels),
                 len(result.validation_results))
        return AnalyzeResponse(success=True, data=result.bundle.to_dict())

    @app.get("/analyze")
    async def describe():
        return {
            "message": "Dream Analysis API",
            "version": SERVICE_VERSION,
            "endpoints": {"POST": "/analyze - Analyze dream text"},
        }

    @app.get("/health")
    async def health():
        return {"status": "ok", "adapters": app.state.adapters is not None}

    return app


app = create_app()
