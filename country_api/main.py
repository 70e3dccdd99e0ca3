import logging
import os
import time
from fastapi import FastAPI, Depends, HTTPException, status, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, FileResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import httpx

from . import crud, schemas, services
from .config import settings, get_image_path
from .database import get_db, init_db, engine
from .logging_config import configure_logging
from .services import UpstreamUnavailable, PersistenceError

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create the FastAPI app
app = FastAPI(
    title="Country Currency & Exchange API",
    description="An API to fetch, cache, and serve country and currency data.",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Event Handlers ---

@app.on_event("startup")
async def on_startup():
    """
    Create the tables and the shared HTTP client for the upstream APIs.
    """
    await init_db()
    app.state.http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
    logger.info("Application started")

@app.on_event("shutdown")
async def on_shutdown():
    """
    Close the HTTP client and the database engine.
    """
    await app.state.http_client.aclose()
    await engine.dispose()

# --- Dependencies ---

def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client

# --- Middleware ---

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "HTTP %s %s responded %d in %.1fms",
            request.method, request.url.path, status_code, elapsed_ms,
        )

# --- Custom Error Handlers ---

@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable):
    """
    Handle 503 errors from external API failures.
    """
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "External data source unavailable",
            "details": f"Could not fetch data from {exc.api_name}"
        }
    )

@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle 400 validation errors to match the required format.
    """
    details = {}
    for error in exc.errors():
        field = error["loc"][-1] if len(error["loc"]) > 1 else "body"
        details[str(field)] = error["msg"]

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details}
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle generic 404/other HTTP errors.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected 500 internal server errors.
    """
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )

# --- API Endpoints ---

@app.get("/", summary="Service Banner")
async def root():
    return {"message": "Country Currency API is running!"}

@app.get("/health", summary="Health Check")
async def health():
    return {"status": "healthy"}

@app.post(
    "/countries/refresh",
    response_model=schemas.RefreshResult,
    responses={503: {"model": schemas.ErrorDetail}, 500: {"model": schemas.ErrorDetail}},
    summary="Refresh Country Data",
    description="Fetches data from external APIs, updates the database, and generates a summary image.",
    status_code=status.HTTP_200_OK
)
async def refresh_countries_data(
    db: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Endpoint to trigger the data refresh process.
    """
    # UpstreamUnavailable and PersistenceError are caught by the custom handlers
    return await services.process_and_cache_countries(db, client)

@app.get(
    "/countries",
    response_model=List[schemas.Country],
    summary="Get All Countries",
    description="Get a list of all countries from the database, with optional filtering and sorting."
)
async def get_all_countries(
    region: Optional[str] = Query(None, description="Filter by region (e.g., 'Africa')"),
    currency: Optional[str] = Query(None, description="Filter by currency code (e.g., 'NGN')"),
    sort: Optional[str] = Query(
        None,
        description="gdp_desc, gdp_asc, population_desc, population_asc, name_asc or name_desc"
    ),
    db: AsyncSession = Depends(get_db)
):
    return await crud.get_countries(db, region=region, currency=currency, sort=sort)

# Declared before /countries/{name} so "image" is not taken for a country name
@app.get(
    "/countries/image",
    summary="Get Summary Image",
    description="Serves the summary image generated during the last refresh."
)
async def get_summary_image():
    """
    Serve the generated summary image file.
    """
    image_path = str(get_image_path())

    if not os.path.exists(image_path):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Summary image not found"}
        )
    return FileResponse(image_path, media_type="image/png")

@app.get(
    "/countries/{name}",
    response_model=schemas.Country,
    responses={404: {"model": schemas.ErrorDetail}},
    summary="Get Country by Name",
    description="Get a single country by its name (case-insensitive)."
)
async def get_country_by_name(name: str, db: AsyncSession = Depends(get_db)):
    db_country = await crud.get_country_by_name(db, name=name)
    if db_country is None:
        raise HTTPException(status_code=404, detail="Country not found")
    return db_country

@app.delete(
    "/countries/{name}",
    response_model=schemas.MessageResponse,
    responses={404: {"model": schemas.ErrorDetail}},
    summary="Delete Country by Name",
    description="Delete a single country from the cache by its name.",
    status_code=status.HTTP_200_OK
)
async def delete_country(name: str, db: AsyncSession = Depends(get_db)):
    """
    Delete a country record from the database.
    """
    deleted = await crud.delete_country_by_name(db, name=name)
    if not deleted:
        raise HTTPException(status_code=404, detail="Country not found")
    return {"status": "success", "message": f"Successfully deleted {name.strip()}"}

@app.get(
    "/status",
    response_model=schemas.StatusResponse,
    summary="Get API Status",
    description="Get the total number of cached countries and the last refresh timestamp."
)
async def get_status(db: AsyncSession = Depends(get_db)):
    total, last_refreshed_at = await crud.get_status(db)
    return {"total_countries": total, "last_refreshed_at": last_refreshed_at}
