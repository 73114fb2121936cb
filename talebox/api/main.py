"""
FastAPI application for the Talebox API.

This module sets up the main FastAPI app with routes, middleware,
and configuration.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from talebox.config import config
from talebox.database.client import SupabaseClientError, get_supabase_admin_client, verify_supabase_connection
from talebox.routes.admin import router as admin_router
from talebox.routes.auth import router as auth_router
from talebox.routes.stories import router as stories_router
from talebox.routes.story import router as story_router
from talebox.utils.logging import api_logger as logger, configure_logging

configure_logging(config.LOG_LEVEL)

# Create FastAPI app
app = FastAPI(
    title="Talebox API",
    description="Children's stories with generated text and narrated audio",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(story_router)
app.include_router(stories_router)
app.include_router(admin_router)


# ===== Health Check =====

@app.get("/health")
async def health_check():
    """Health check endpoint - must be fast and never touch external services."""
    return {
        "status": "healthy",
        "environment": config.ENVIRONMENT,
    }


@app.get("/api/health/supabase")
async def supabase_health():
    """Check that the service-role client can reach the job table."""
    if not config.supabase_configured:
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": "Supabase is not configured"}
        )

    try:
        client = get_supabase_admin_client()
    except SupabaseClientError as e:
        return JSONResponse(status_code=503, content={"ok": False, "error": str(e)})

    if not verify_supabase_connection(client):
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": "Supabase query failed"}
        )

    return {"ok": True}


# ===== Error Handlers =====

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", type=type(exc).__name__)
    show_details = config.ENVIRONMENT != "production"
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if show_details else "An error occurred",
            "type": type(exc).__name__
        }
    )


# ===== Startup Event =====

@app.on_event("startup")
async def startup_event():
    """Report configuration status; never blocks startup."""
    logger.info(
        "Talebox API starting",
        environment=config.ENVIRONMENT,
        supabase=config.supabase_configured,
        llm=config.llm_configured,
        tts=config.tts_configured,
        worker_secret=bool(config.worker_secret),
    )
    if not config.supabase_configured:
        logger.warning("Supabase is not configured; story endpoints will fail")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "talebox.api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.LOG_LEVEL.lower()
    )
