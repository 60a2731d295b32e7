from app.api.routes.health import router as health_router
from app.api.routes.market import router as market_router

__all__ = ["health_router", "market_router"]
