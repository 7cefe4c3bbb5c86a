import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from correlator.api import correlation, cron, trends
from correlator.services.orchestration_service import SingleFlight

logger = logging.getLogger(__name__)

app = FastAPI(title="Symptom Correlator", version="0.1.0")

# One in-flight map per process, shared by every request-scoped orchestrator
app.state.single_flight = SingleFlight()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Render every HTTP error as {"error": "<message>"}."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    logger.warning("Request validation failed on %s: %s", request.url.path, errors)
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid parameter {field}: {message}" if field else message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Stack trace stays in the server log
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(correlation.router)
app.include_router(cron.router)
app.include_router(trends.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
