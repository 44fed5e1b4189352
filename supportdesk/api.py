"""HTTP API for the SupportDesk agent.

Thin FastAPI layer over the protocol bridge and the embedded pipeline.
Routes that have a local equivalent try the MCP tool-provider first and fall
back to the embedded pipeline when the bridge reports it unavailable;
``/api/classify`` has no fallback and answers 503 instead.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .bridge import ProtocolBridge
from .config import SupportDeskConfig
from .exceptions import BadUpstreamResponse, UpstreamUnavailable, ValidationError
from .models import AskResponse, IntentResult, Metrics, SearchResult
from .pipeline import SupportPipeline

logger = logging.getLogger(__name__)

ASK_TOP_K = 3

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class AskRequest(BaseModel):
    question: Optional[str] = None


class ClassifyRequest(BaseModel):
    text: Optional[str] = None


def _require(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def parse_top_k(raw: Optional[str], default: int, upper: int) -> int:
    """Parse a ``topK`` query value, clamped to ``[1, upper]``.

    Only the leading integer of the value is read, so ``"2.5"`` means 2.
    Missing, non-numeric and zero values fall back to ``default``.
    """
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    value = int(match.group(1)) if match else 0
    if value == 0:
        value = default
    return min(upper, max(1, value))


def _remote_model(result, model: type, label: str) -> Optional[BaseModel]:
    if not result.available:
        return None
    try:
        return model.model_validate(result.data)
    except PydanticValidationError as e:
        logger.warning(f"Discarding malformed {label} result from MCP: {e}")
        return None


def create_app(
    config: Optional[SupportDeskConfig] = None,
    bridge: Optional[ProtocolBridge] = None,
    pipeline: Optional[SupportPipeline] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration; defaults to environment settings.
        bridge: Protocol bridge to the tool-provider; one is created when omitted.
        pipeline: Embedded pipeline used for fallbacks and local-only routes.

    Returns:
        FastAPI: The configured application. The bridge is closed on shutdown.
    """
    config = config or SupportDeskConfig()
    bridge = bridge or ProtocolBridge(config.bridge, data_dir=config.data_dir)
    pipeline = pipeline or SupportPipeline(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await bridge.close()

    app = FastAPI(title="SupportDesk Agent", lifespan=lifespan)
    app.state.config = config
    app.state.bridge = bridge
    app.state.pipeline = pipeline

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_error_handler(request: Request, exc: UpstreamUnavailable):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(BadUpstreamResponse)
    async def bad_upstream_handler(request: Request, exc: BadUpstreamResponse):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.post("/api/ask")
    async def ask(req: Optional[AskRequest] = None) -> Dict[str, Any]:
        question = _require(req.question if req else None, "question")

        result = await bridge.ask_support(question, ASK_TOP_K)
        if result.available:
            # the provider has already logged this question; never answer it again locally
            try:
                remote = AskResponse.model_validate(result.data)
            except PydanticValidationError as e:
                logger.warning(f"Malformed ask_support result from MCP: {e}")
                raise BadUpstreamResponse("Malformed ask_support result from MCP") from e
            data = remote.to_json_dict()
            data["trace"] = {
                **data["trace"],
                "rag": {"confidence": data["confidence"], "top": data["citations"]},
            }
            return data

        response = await pipeline.ask(question, ASK_TOP_K)
        return response.to_json_dict()

    @app.get("/api/logs")
    async def logs():
        return await pipeline.logs_snapshot()

    @app.get("/api/faqs")
    async def faqs() -> Dict[str, Any]:
        return await pipeline.faq_overview()

    @app.get("/api/similar")
    async def similar(
        q: Optional[str] = None, top_k: Optional[str] = Query(None, alias="topK")
    ) -> Dict[str, Any]:
        query = _require(q, "q")
        result = await pipeline.search_similar(query, parse_top_k(top_k, 10, 30))
        return result.to_json_dict()

    @app.get("/api/search")
    async def search(
        q: Optional[str] = None, top_k: Optional[str] = Query(None, alias="topK")
    ) -> Dict[str, Any]:
        query = _require(q, "q")
        limit = parse_top_k(top_k, 5, 20)

        remote = _remote_model(await bridge.search_faq(query, limit), SearchResult, "search_faq")
        if remote is not None:
            return remote.to_json_dict()

        result = await pipeline.search_faq(query, limit)
        return result.to_json_dict()

    @app.post("/api/classify")
    async def classify(req: Optional[ClassifyRequest] = None) -> Dict[str, Any]:
        text = _require(req.text if req else None, "text")

        remote = _remote_model(await bridge.classify_intent(text), IntentResult, "classify_intent")
        if remote is None:
            raise UpstreamUnavailable("MCP unavailable")
        return remote.to_json_dict()

    @app.get("/api/metrics")
    async def metrics() -> Dict[str, Any]:
        remote = _remote_model(await bridge.get_metrics(), Metrics, "get_metrics")
        if remote is not None:
            return remote.to_json_dict()

        result = await pipeline.metrics()
        return result.to_json_dict()

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "bridge": bridge.state.value}

    return app
