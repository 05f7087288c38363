import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sessionhub.database import init_db
from sessionhub.routers import actor_router, session_router
from sessionhub.config import get_settings
from sessionhub.errors import FatalStoreError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    init_db()
    logger.info("Database tables checked and created if necessary")
    yield


app = FastAPI(
    title="Sessions",
    description="Time-boxed sessions that actors create, join and comment on",
    version="1.0.0",
    lifespan=lifespan
)

# The frontend dev server runs on another origin; only allowed in debug
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(actor_router.router)
app.include_router(session_router.router)


@app.exception_handler(FatalStoreError)
async def fatal_store_error_handler(request: Request, exc: FatalStoreError):
    """
    A backing store is unreachable or gave up; nothing was changed.
    """
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"}
    )


@app.get("/")
async def root():
    """
    Health check endpoint.
    """
    return {
        "status": "running",
        "version": "1.0.0"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sessionhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
