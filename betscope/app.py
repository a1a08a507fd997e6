"""
BetScope - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- Authentication, user and graph routes
- Database lifecycle management
- Google sign-in provider (disabled with a warning when unconfigured)
- One error shape for every authentication failure
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from betscope.auth import credentials
from betscope.auth.database import get_engine, get_session_factory, init_db
from betscope.auth.errors import AuthError
from betscope.auth.oauth import build_google_provider
from betscope.auth.routes import router as auth_router
from betscope.auth.schemas import ErrorResponse
from betscope.config import settings
from betscope.gateway.middleware import SecurityMiddleware
from betscope.graph.routes import router as graph_router
from betscope.logging import configure_logging, get_logger, get_request_id
from betscope.users.routes import router as users_router


configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger("betscope.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Initialize SQLModel database (users, devices, sessions, refresh tokens)
        - Build the Google OAuth provider
        - Hash the dummy password used for unknown-email logins

    Shutdown:
        - Dispose the engine
    """
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)
    app.state.db_engine = engine
    app.state.db_session_factory = get_session_factory(engine)
    app.state.google_oauth = build_google_provider(settings)
    credentials.warm_up()

    logger.info("app.startup", environment=settings.NODE_ENV, google_oauth=app.state.google_oauth.enabled)

    yield

    engine.dispose()
    logger.info("app.shutdown")


app = FastAPI(
    title="BetScope",
    description="Identity, session and device trust service for the BetScope prediction platform",
    version="0.1.0",
    lifespan=lifespan,
)

# Cookies require credentials; origins must be explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Device-Fingerprint", "X-Device-Name", "X-Request-ID"],
)

app.add_middleware(SecurityMiddleware)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render AuthError subclasses as ErrorResponse."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    body = ErrorResponse(detail=exc.detail, error_code=exc.error_code, request_id=get_request_id())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(graph_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for local dev tooling."""
    return {
        "status": "healthy",
        "version": "0.1.0",
        "services": {
            "database": True,
            "google_oauth": app.state.google_oauth.enabled,
        },
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "BetScope",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
