from app.api.v1.routes import router as api_router

__all__ = ["api_router"]
