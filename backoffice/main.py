from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.api.v1.routes import router as v1_router
from backoffice.core.config import settings
from backoffice.core.logging import configure_logging, get_logger

configure_logging(settings.log_level)
logger = get_logger("backoffice")

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list(),
    # Bearer tokens, no cookies.
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Never leak internals to the client; the traceback goes to the log.
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "unknown", "message": "Unexpected error"},
    )


@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": settings.app_name,
        "env": settings.environment,
        "version": settings.app_version,
    }


app.include_router(v1_router)

logger.info(
    "%s %s started (env=%s, supabase=%s)",
    settings.app_name,
    settings.app_version,
    settings.environment,
    settings.supabase_base_url,
)
