"""HTTP surface of the image pipeline."""

import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from . import __version__
from .core.exceptions import ValidationError
from .core.factories import Pipeline, PipelineFactory
from .core.logging_config import get_logger
from .core.models import PipelineSettings

logger = get_logger("api")

router = APIRouter(prefix="/images", tags=["images"])


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """The acting user, supplied by the authenticating proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def _failure(
    pipeline: Pipeline, status_code: int, error: str, exc: Exception
) -> JSONResponse:
    body: Dict[str, Any] = {"error": error, "message": str(exc)}
    if status_code >= 500 and pipeline.settings.is_development:
        body["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return JSONResponse(status_code=status_code, content=body)


def _field(payload: Any, name: str) -> Any:
    return payload.get(name) if isinstance(payload, dict) else None


@router.post("/batch-process")
def batch_process(
    payload: Any = Body(default=None),
    user_id: str = Depends(require_user),
    pipeline: Pipeline = Depends(get_pipeline),
):
    try:
        result = pipeline.orchestrator.process(
            _field(payload, "imageIds"), _field(payload, "options"), user_id
        )
    except ValidationError as e:
        logger.info(f"Rejected batch request from {user_id}: {e}")
        return _failure(pipeline, 400, "Invalid request", e)
    except Exception as e:
        logger.error(f"Batch processing failed: {e}", exc_info=True)
        return _failure(pipeline, 500, "Batch processing failed", e)
    return result.to_response()


@router.get("/content-images")
def content_images(
    website_id: Optional[str] = Query(default=None, alias="websiteId"),
    user_id: str = Depends(require_user),
    pipeline: Pipeline = Depends(get_pipeline),
):
    if website_id == "undefined":
        website_id = None
    try:
        images = pipeline.catalog.list_images(user_id, website_id)
    except Exception as e:
        logger.error(f"Failed to fetch images: {e}", exc_info=True)
        return _failure(pipeline, 500, "Failed to fetch images", e)
    return [image.model_dump(mode="json", by_alias=True) for image in images]


@router.get("/metadata-status")
def metadata_status(
    website_id: Optional[str] = Query(default=None, alias="websiteId"),
    user_id: str = Depends(require_user),
    pipeline: Pipeline = Depends(get_pipeline),
):
    owned = {w.id for w in pipeline.websites.list_for_user(user_id)}
    if website_id and website_id not in owned:
        return []
    entries = pipeline.audit_log.list(website_id or None)
    return [
        entry.model_dump(mode="json")
        for entry in entries
        if entry.website_id is None or entry.website_id in owned
    ]


@router.post("/process-metadata")
def process_metadata(
    payload: Any = Body(default=None),
    user_id: str = Depends(require_user),
    pipeline: Pipeline = Depends(get_pipeline),
):
    try:
        result = pipeline.single_image.process(
            _field(payload, "imageData"), _field(payload, "options")
        )
    except ValidationError as e:
        return _failure(pipeline, 400, "Invalid request", e)
    except Exception as e:
        logger.error(f"Metadata processing error for {user_id}: {e}", exc_info=True)
        return _failure(pipeline, 500, "Failed to process metadata", e)
    return result.to_response()


def create_app(
    pipeline: Optional[Pipeline] = None,
    settings: Optional[PipelineSettings] = None,
) -> FastAPI:
    """Build the FastAPI application around ``pipeline`` (a default one if omitted)."""
    if pipeline is None:
        pipeline = PipelineFactory.create_pipeline(settings=settings)

    app = FastAPI(title="WP Image Pipeline", version=__version__)
    app.state.pipeline = pipeline
    app.include_router(router)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
