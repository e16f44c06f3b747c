import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app import models  # noqa: F401  (register tables)
from app.api import entries, meal_analysis
from app.config import settings
from app.database import Base, engine
from app.services.ai_errors import ClassifiedError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Meal Nutrition Analyzer", version="0.1.0", lifespan=lifespan)


@app.exception_handler(ClassifiedError)
async def classified_error_handler(request: Request, exc: ClassifiedError):
    """
    Map a classified analysis failure to its HTTP status.

    Clients get the stable public message for the error kind; the raw upstream
    text is only included when expose_error_details is enabled.
    """
    logger.error(
        "Analysis failed on %s: kind=%s code=%s",
        request.url.path,
        exc.kind.value,
        exc.code,
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(include_details=settings.expose_error_details),
    )


# Include routers
app.include_router(meal_analysis.router)
app.include_router(entries.router)


@app.get("/")
async def index():
    return {
        "success": True,
        "message": "Server is running!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "POST /api/analyze-meal-text": "Analyze meal from text description",
            "POST /api/analyze-meal-image": "Analyze meal from uploaded image",
            "GET /api/entries": "List saved entries",
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
