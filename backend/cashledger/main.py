import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cashledger.core.config import settings
from cashledger.core.database import SessionLocal, init_db
from cashledger.core.errors import LedgerError, ValidationError
from cashledger.core.logging import setup_logging
from cashledger.routes.admin import router as admin_router
from cashledger.routes.cash_boxes import router as cash_boxes_router
from cashledger.routes.health import router as health_router
from cashledger.routes.money_boxes import router as money_boxes_router
from cashledger.services.seed import seed_demo


logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in error.get("loc", [])], "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    detail = "; ".join(f"{'.'.join(error['loc'])}: {error['msg']}" for error in errors)
    error = ValidationError(details={"errors": errors}, detail=detail)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))


def create_app() -> FastAPI:
    setup_logging(settings.log_level, settings.log_file)

    app = FastAPI(title="Cash Ledger API", version="0.1.0")

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health_router, tags=["health"])
    app.include_router(cash_boxes_router, prefix="/cash-box", tags=["cash-box"])
    app.include_router(money_boxes_router, prefix="/money-boxes", tags=["money-boxes"])
    app.include_router(admin_router, prefix="/admin", tags=["admin"])

    return app


app = create_app()

# Only seed in development or when explicitly requested
if settings.env == "dev" or os.getenv("FORCE_SEED") == "true":
    init_db()
    with SessionLocal() as db:
        seed_demo(db)
