from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from labeler import __version__
from labeler.config import get_settings
from labeler.log import configure_logging
from labeler.rules.errors import RuleEngineError, RuleNotFoundError, ValidationError
from labeler.rules.models import StatisticsFilter, format_timestamp
from labeler.rules.schema import parse_timestamp
from labeler.services import processing, rule_service
from labeler.services.rules_store import RulesStore, open_store

logger = logging.getLogger("labeler.api")


class RulePayload(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    conditions: dict[str, Any] | None = None
    label: str | None = Field(default=None, max_length=200)
    priority: int | None = None
    enabled: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TogglePayload(BaseModel):
    enabled: bool | None = None


def _error(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    body = {"ok": False, "error": {"code": code, "message": message, **extra}}
    return JSONResponse(status_code=status_code, content=body)


def _optional_timestamp(raw: str | None, name: str) -> datetime | None:
    if raw is None or not raw.strip():
        return None
    return parse_timestamp(raw, f"$.{name}")


def create_app(store: RulesStore | None = None) -> FastAPI:
    store = store or open_store()
    app = FastAPI(title="Rule Labeler API", version=__version__)
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload = {"ok": False, "error": {"code": f"HTTP_{exc.status_code}", "message": str(exc.detail)}}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        path = "$." + ".".join(str(p) for p in first.get("loc", ())[1:]) if first.get("loc") else "$"
        return _error(400, "RULES_001_VALIDATION_FAILED", str(first.get("msg", "invalid request")), path=path)

    @app.exception_handler(ValidationError)
    async def _validation_handler(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc.err.code, exc.reason, path=exc.path)

    @app.exception_handler(RuleNotFoundError)
    async def _not_found_handler(_: Request, exc: RuleNotFoundError) -> JSONResponse:
        return _error(404, exc.err.code, f"rule not found: {exc.rule_id}")

    @app.exception_handler(RuleEngineError)
    async def _engine_error_handler(_: Request, exc: RuleEngineError) -> JSONResponse:
        logger.error("request failed: %s", exc)
        return _error(500, exc.err.code, str(exc))

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {
            "ok": True,
            "service": "rule-labeler",
            **store.observability_info(),
            "ts": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/rules")
    def rules_list() -> dict[str, Any]:
        return {"ok": True, "rules": [r.to_dict() for r in rule_service.list_rules(store)]}

    @app.post("/api/rules", status_code=201)
    def rules_create(payload: RulePayload) -> dict[str, Any]:
        rule = rule_service.create_rule(store, payload.changes())
        return {"ok": True, "rule": rule.to_dict()}

    @app.get("/api/rules/{rule_id}")
    def rules_get(rule_id: str) -> dict[str, Any]:
        return {"ok": True, "rule": rule_service.get_rule(store, rule_id).to_dict()}

    @app.put("/api/rules/{rule_id}")
    def rules_update(rule_id: str, payload: RulePayload) -> dict[str, Any]:
        rule = rule_service.update_rule(store, rule_id, payload.changes())
        return {"ok": True, "rule": rule.to_dict()}

    @app.delete("/api/rules/{rule_id}", status_code=204)
    def rules_delete(rule_id: str) -> Response:
        rule_service.delete_rule(store, rule_id)
        return Response(status_code=204)

    @app.post("/api/rules/{rule_id}/toggle")
    def rules_toggle(rule_id: str, payload: TogglePayload | None = None) -> dict[str, Any]:
        enabled = payload.enabled if payload is not None else None
        rule = rule_service.toggle_rule(store, rule_id, enabled)
        return {"ok": True, "rule": rule.to_dict()}

    @app.post("/api/process")
    def process(payload: Any = Body(default=None)) -> dict[str, Any]:
        record = processing.process_payload(store, payload)
        return {
            "ok": True,
            "id": record.id,
            "labels": list(record.labels),
            "timestamp": format_timestamp(record.created_at),
        }

    @app.post("/api/test")
    def test_rules(payload: Any = Body(default=None)) -> dict[str, Any]:
        result = processing.dry_run_payload(store, payload)
        return {"ok": True, "labels": result["labels"], "timestamp": format_timestamp(result["timestamp"])}

    @app.get("/api/statistics")
    def statistics(
        label: str | None = Query(default=None),
        date_from: str | None = Query(default=None, alias="from"),
        date_to: str | None = Query(default=None, alias="to"),
    ) -> dict[str, Any]:
        criteria = StatisticsFilter(
            label=label or None,
            date_from=_optional_timestamp(date_from, "from"),
            date_to=_optional_timestamp(date_to, "to"),
        )
        snapshot = processing.compute_statistics(store, criteria)
        return {"ok": True, **snapshot.to_dict()}

    @app.get("/api/records")
    def records() -> dict[str, Any]:
        rows = store.get_processed_records()
        return {"ok": True, "count": len(rows), "records": [r.to_dict() for r in rows]}

    return app


def run_server() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("starting API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run("labeler.web.api:create_app", factory=True, host=settings.api_host, port=settings.api_port, reload=False)


if __name__ == "__main__":
    run_server()
