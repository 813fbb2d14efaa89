"""Main entry point for the gate decision and audit API."""

import os

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import dailygate
from dailygate.core import BootConfiguration, DailyGateContainer, di
from dailygate.core.config.web import GateWebSettings
from dailygate.gate import errors

from .route import router

# most specific first; InvalidResult must match before InvalidState
ErrorStatus: list[tuple[type[errors.GateError], int]] = [
    (errors.NotFound, status.HTTP_404_NOT_FOUND),
    (errors.InvalidResult, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (errors.InvalidAnswer, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (errors.InvalidState, status.HTTP_409_CONFLICT),
    (errors.Unauthorized, status.HTTP_403_FORBIDDEN),
    (errors.QuotaExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (errors.UpstreamUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (errors.UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (errors.SessionExpired, status.HTTP_410_GONE),
    (errors.LockTimeout, status.HTTP_503_SERVICE_UNAVAILABLE),
    (errors.AuditWriteFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: errors.GateError) -> int:
    for cls, code in ErrorStatus:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_gate_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, errors.GateError)
    return JSONResponse(
        status_code=status_for(exc),
        content={"detail": exc.message, "error": type(exc).__name__, **exc.context},
    )


@di.inject
def _create_app(
    config: GateWebSettings = di.Provide["config.web.gate", di.as_(GateWebSettings)],
) -> FastAPI:
    app = FastAPI(
        title=config.title,
        description="Daily assessment gate for AI-assisted work",
        version=dailygate.__version__,
    )
    app.add_exception_handler(errors.GateError, handle_gate_error)
    app.include_router(router)
    return app


def create_app() -> FastAPI:
    """Factory function for uvicorn."""
    boot_vars = os.getenv("__DailyGate_BOOT")
    if boot_vars:
        boot_cf = BootConfiguration.model_validate_json(boot_vars)
        ct = DailyGateContainer()
        DailyGateContainer.boot(ct, **dict(boot_cf))
        ct.wire(modules=["dailygate.web.gate.main", "dailygate.web.gate.route.gate", "dailygate.web.gate.route.audit"])
        return _create_app(config=GateWebSettings(**ct.config.web.gate()))
    return _create_app()
