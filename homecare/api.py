import time

from fastapi import APIRouter, FastAPI, Request

from homecare.config import get_settings
from homecare.database import load_sample_data
from homecare.errors import register_exception_handlers
from homecare.log import configure_logging, get_logger
from homecare.routers import (
    ai,
    analytics,
    billing,
    documentation,
    employees,
    expiry,
    patients,
    realtime,
    shifts,
    tours,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every HTTP request."""
    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        raise
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )
    return response


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(title="Home Care API", debug=settings.debug)
    register_exception_handlers(app)
    app.middleware("http")(log_requests)

    app.include_router(router)
    for module in (
        patients,
        employees,
        tours,
        shifts,
        documentation,
        billing,
        expiry,
        ai,
        analytics,
        realtime,
    ):
        app.include_router(module.router)

    if settings.load_sample_data:
        load_sample_data()
    logger.info("app_created", env=settings.app_env)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
