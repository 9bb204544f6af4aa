from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.sms import router as sms_router

__all__ = ["health_router", "sms_router"]
