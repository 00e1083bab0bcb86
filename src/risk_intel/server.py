"""FastAPI service exposing scans and the analyst audit trail."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .audit import AuditStore, build_audit_store, record_action
from .config import configure_logging, get_settings
from .errors import ClientError
from .models import ActionRequest, ScanResult
from .scan import ScanPipeline, build_pipeline, degraded_result, validate_query

logger = logging.getLogger(__name__)

router = APIRouter()


def _add_cors(app: FastAPI) -> None:
    """Allow the dashboard to call the API from another origin."""
    allow_all = os.getenv("CORS_ALLOW_ALL", "true").lower() == "true"
    origins_env = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [o.strip() for o in origins_env.split(",") if o.strip()]
    allow_credentials = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    if allow_all or not origins:
        origins = ["*"]
    if origins == ["*"] and allow_credentials:
        # Starlette/FastAPI disallow wildcard origins when credentials are enabled.
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _pipeline(request: Request) -> ScanPipeline:
    state = request.app.state
    if state.pipeline is None:
        state.pipeline = build_pipeline(get_settings())
    return state.pipeline


def _audit_store(request: Request) -> AuditStore:
    state = request.app.state
    if state.audit_store is None:
        state.audit_store = build_audit_store(get_settings())
    return state.audit_store


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(piece) for piece in err["loc"]) or "<root>"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/scan", response_model=ScanResult)
async def scan(request: Request, payload: Any = Body(None)) -> ScanResult:
    """Screen one entity. 400 on a missing query; degraded 200 on internal failure."""
    raw_query = payload.get("query") if isinstance(payload, dict) else None
    try:
        query = validate_query(raw_query)
    except ClientError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        pipeline = _pipeline(request)
    except Exception:
        logger.exception("Could not build the scan pipeline; returning degraded result")
        return degraded_result(query)
    return await pipeline.scan(query)


@router.post("/action", status_code=status.HTTP_201_CREATED)
def action(payload: Dict[str, Any], request: Request) -> JSONResponse:
    try:
        action_request = ActionRequest.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_message(exc)
        ) from exc

    record = record_action(_audit_store(request), action_request)
    logger.info(
        "%s recorded %s on %s", record.user, record.action.value, record.article_url
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED, content={"success": True, "id": record.id}
    )


@router.get("/history")
def history(request: Request) -> List[Dict[str, Any]]:
    return [
        record.model_dump(mode="json", by_alias=True)
        for record in _audit_store(request).list()
    ]


def create_app(
    pipeline: Optional[ScanPipeline] = None,
    audit_store: Optional[AuditStore] = None,
) -> FastAPI:
    """
    Build the app. Collaborators default to ones wired from settings on first use,
    so importing this module needs no API keys.
    """
    app = FastAPI(title="Risk Intel")
    app.state.pipeline = pipeline
    app.state.audit_store = audit_store
    _add_cors(app)
    app.include_router(router)
    # The dashboard addresses the same routes under /api.
    app.include_router(router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging(get_settings().log_level)
    uvicorn.run(
        "risk_intel.server:app",
        host=os.getenv("RISK_INTEL_HOST", "0.0.0.0"),
        port=int(os.getenv("RISK_INTEL_PORT", os.getenv("PORT", "8080"))),
        reload=os.getenv("RISK_INTEL_RELOAD", "false").lower() == "true",
    )
