from __future__ import annotations

import logging
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from itinerary.api import health, schedule, trips
from itinerary.providers.google_routes import close_google_routes_provider
from itinerary.services.trip_store import get_trip_store
from itinerary.utils.errors import AppError
from itinerary.utils.settings import get_settings


LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    get_trip_store().clear()
    await close_google_routes_provider()


settings = get_settings()
app = FastAPI(title="Itinerary Engine API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def structured_error_middleware(request: Request, call_next):
    correlation_id = str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response
    except AppError as exc:
        LOGGER.warning("%s failed: %s (code=%s, details=%s)", exc.stage, exc.message, exc.error_code, exc.details)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error_code": exc.error_code,
                "message": exc.message,
                "details": exc.details,
                "correlation_id": correlation_id,
            },
            headers={"X-Correlation-ID": correlation_id},
        )
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("Unhandled error (correlation_id=%s)\n%s", correlation_id, traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "INTERNAL_ERROR",
                "message": "Unexpected server error",
                "details": {"type": type(exc).__name__},
                "correlation_id": correlation_id,
            },
            headers={"X-Correlation-ID": correlation_id},
        )


app.include_router(health.router)
app.include_router(schedule.router)
app.include_router(trips.router)
