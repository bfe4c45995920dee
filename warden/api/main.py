"""
WARDEN API - Main Application Entry Point

FastAPI backend for admin access control and the audit trail.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from warden.api.access.identity import Identity
from warden.api.auth.schemas import IdentityResponse
from warden.api.config import settings
from warden.api.db.session import close_db, init_db
from warden.api.dependencies import get_current_identity


def configure_logging() -> None:
    """Root logger at LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="WARDEN - Role-based access control and audit trail API",
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Persist newly issued audit session ids in the session cookie
    @app.middleware("http")
    async def audit_session_cookie(request: Request, call_next):
        response = await call_next(request)
        session_id = getattr(request.state, "new_session_id", None)
        if session_id:
            response.set_cookie(
                settings.SESSION_COOKIE_NAME,
                session_id,
                httponly=True,
                samesite="lax",
            )
        return response

    # Include routers
    from warden.api.auth.routes import router as auth_router
    from warden.api.admin.routes import router as admin_router
    from warden.api.audit.routes import router as audit_router

    app.include_router(auth_router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])
    app.include_router(audit_router, prefix="/api/v1/audit", tags=["Audit"])

    @app.get("/api/me", response_model=IdentityResponse, tags=["Authentication"])
    async def get_me(identity: Identity = Depends(get_current_identity)):
        return IdentityResponse.from_identity(identity)

    # Health check endpoint
    @app.get("/api/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "service": settings.APP_NAME,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "warden.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
