"""
strive/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Wires storage, hosted auth client, browser and session manager
- Registers API routes (session, OAuth redirect)
- No business logic should be written here
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from strive.core.config import settings, validate_settings
from strive.core.errors import add_exception_handlers
from strive.core.logging import setup_logging, get_logger, LogContext
from strive.db.mongo import (
    connect_to_mongo,
    close_mongo_connection,
    check_database_health,
    create_indexes,
    get_local_storage_collection,
)
from strive.db.storage import InMemoryKeyValueStore, MongoKeyValueStore
from strive.services.auth_service import HostedAuthClient
from strive.services.browser_service import SystemBrowser
from strive.services.profile_service import ProfileService
from strive.services.session_service import SessionManager
from strive.api import session, oauth_callback, marketplace

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


async def _open_storage():
    if settings.STORAGE_BACKEND == "memory":
        logger.warning("Using in-memory storage; login markers will not survive a restart")
        return InMemoryKeyValueStore()

    logger.info("Connecting to MongoDB...")
    await connect_to_mongo()
    await create_indexes()

    if await check_database_health():
        logger.info("Database health check passed")
    else:
        logger.warning("Database health check failed during startup")

    return MongoKeyValueStore(get_local_storage_collection())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    with LogContext(operation="startup"):
        logger.info("Starting Strive session service...")

        try:
            validate_settings()
            logger.info("Configuration validated")

            storage = await _open_storage()

            auth_client = HostedAuthClient(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY,
                storage,
                storage_key=settings.SESSION_STORAGE_KEY,
                expiry_margin_seconds=settings.SESSION_EXPIRY_MARGIN_SECONDS,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                max_retries=settings.HTTP_MAX_RETRIES,
            )
            profiles = ProfileService(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY,
                storage,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            browser = SystemBrowser()
            manager = SessionManager(
                auth_client,
                storage,
                browser,
                profiles,
                oauth_provider=settings.OAUTH_PROVIDER,
                redirect_url=settings.OAUTH_REDIRECT_URL,
                oauth_timeout=settings.OAUTH_TIMEOUT_SECONDS,
                phone_country_code=settings.PHONE_COUNTRY_CODE,
            )

            app.state.browser = browser
            app.state.session_manager = manager

            state = await manager.start()
            logger.info(f"Initial session state: {state.status.value}")
            logger.info(f"Environment: {settings.ENVIRONMENT}")

        except Exception as e:
            logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
            raise

    yield  # Application runs here

    logger.info("Shutting down Strive session service...")

    try:
        await manager.stop()
        await auth_client.aclose()
        await profiles.aclose()
        await close_mongo_connection()
        logger.info("Strive session service shut down")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


# Create FastAPI app with lifespan
app = FastAPI(
    title="Strive Session Service",
    description="Reconciles OAuth and phone OTP logins into one session",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

add_exception_handlers(app)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    # The OAuth route legitimately waits on the browser
    if process_time > settings.OAUTH_TIMEOUT_SECONDS + 5:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


app.include_router(session.router, prefix=settings.API_PREFIX, tags=["Session"])
app.include_router(marketplace.router, prefix=settings.API_PREFIX, tags=["Marketplace"])
app.include_router(oauth_callback.router, tags=["OAuth Callback"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "Strive Session API",
        "version": "1.0.0",
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Checks storage connectivity and reports the current session status.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
        "checks": {}
    }

    if settings.STORAGE_BACKEND == "mongo":
        db_healthy = await check_database_health()
        health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
        if not db_healthy:
            health_status["status"] = "degraded"
    else:
        health_status["checks"]["database"] = "memory"

    manager = getattr(request.app.state, "session_manager", None)
    health_status["checks"]["session"] = manager.get_state().status.value if manager else "not_started"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "strive.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
