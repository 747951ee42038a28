from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from factory_mrp.core.errors import PlanningError
from factory_mrp.core.logging_config import configure_logging
from factory_mrp.core.middleware import RequestContextMiddleware
from factory_mrp.db.base import Base
from factory_mrp.db.session import engine

# Register models
from factory_mrp.db import models  # noqa: F401

from factory_mrp.services.production_plans.api import router as plans_router

APP_ENV = os.getenv("APP_ENV", "production")

logger = logging.getLogger("factory_mrp.main")

app = FastAPI(title="Factory MRP - material requirements & reservations")
app.add_middleware(RequestContextMiddleware)
app.include_router(plans_router)


@app.exception_handler(PlanningError)
async def _planning_error(request: Request, exc: PlanningError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(tuple(e.get("loc", ()))[:2] == ("path", "plan_id") for e in errors):
        body = {"success": False, "message": "無効な生産計画IDです", "error": "INVALID_PLAN_ID"}
    else:
        body = {"success": False, "message": "入力内容に誤りがあります", "error": "VALIDATION_ERROR"}
        if APP_ENV == "development":
            body["details"] = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    body = {"success": False, "message": "サーバーエラーが発生しました", "error": "INTERNAL_ERROR"}
    if APP_ENV == "development":
        body["detail"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.on_event("startup")
async def _startup():
    configure_logging()
    # Dev-friendly schema creation (migrations are available for real upgrades)
    Base.metadata.create_all(bind=engine)
    logger.info("factory_mrp started (env=%s)", APP_ENV)


@app.get("/health")
def health():
    return {"ok": True, "service": "factory_mrp"}
