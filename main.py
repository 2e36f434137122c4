from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from api.v1 import auth, users, ideas, points, store, public_links, youtube
from core.config import settings
from core.errors import FanlistError
from db.base import initialize_database
from db.session import engine, SessionLocal
from sqlalchemy import text
import logging
from utils.logging_config import configure_logging, RequestContextMiddleware
from fastapi import Request

# Configure logging with date-based files and TTL retention
logger = configure_logging("fanlist")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

# Domain errors carry their own status and machine code
@app.exception_handler(FanlistError)
async def fanlist_error_handler(request: Request, exc: FanlistError):
    logger.warning(f"{exc.code} at {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error at {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# Add GZip compression for larger JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, tags=["Authentication"])
app.include_router(users.router, tags=["Users"])
app.include_router(ideas.router, tags=["Ideas"])
app.include_router(points.router, tags=["Points"])
app.include_router(store.router, tags=["Store"])
app.include_router(public_links.router, tags=["Public Links"])
app.include_router(youtube.router, tags=["YouTube"])

@app.on_event("startup")
async def startup_db_client():
    """Create tables when the relational backend is in use"""
    if settings.STORAGE_BACKEND == "sql":
        try:
            await initialize_database()
            logger.info("SQL database initialized")
        except Exception as e:
            logger.warning(f"SQL init skipped or failed: {e}")
    else:
        logger.info("STORAGE_BACKEND=memory; skipping SQL initialization")
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_db_client():
    """Application shutdown"""
    try:
        await engine.dispose()
        logger.info("Disposed SQL engine")
    except Exception as e:
        logger.warning(f"Engine dispose failed: {e}")
    logger.info("Application shutdown complete")

@app.get("/")
async def root():
    return {"message": "Fanlist API", "version": settings.VERSION}

@app.get("/health")
async def health_check():
    if settings.STORAGE_BACKEND == "memory":
        return {"status": "healthy", "storage": "memory"}
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        db_status = "sql_connected"
    except Exception as e:
        logger.warning(f"Health SQL check failed: {e}")
        db_status = "sql_unavailable"
    return {"status": "healthy", "storage": db_status}
