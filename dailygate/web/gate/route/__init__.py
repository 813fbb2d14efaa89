"""Route aggregation for the gate web application."""

from fastapi import APIRouter

from . import audit, gate

router = APIRouter()
router.include_router(gate.router)
router.include_router(audit.router)
