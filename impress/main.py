# impress/main.py
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import threading
import logging

from impress.config.database import engine, init_db
from impress.config.settings import settings
from impress.delivery.api.customize import router as customize_router
from impress.delivery.api.products import router as products_router
from impress.delivery.api.templates import router as templates_router
from impress.domain.errors import DuplicateAssignment, GeometryError, InvalidUnit, InvalidZoneType, NotFound
from impress.domain.fulfillment import FulfillmentService
from impress.infrastructure.identity import StaticIdentityProvider
from impress.infrastructure.images import ImageLoader
from impress.infrastructure.ingestion import PdfIngestionClient

logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()
_service_ready = False


def _ensure_service(app: FastAPI) -> None:
    global _service_ready
    with _service_lock:
        if _service_ready:
            return
        logger.info("Initializing image loader, fulfillment and ingestion services (lazy-init)...")
        loader = ImageLoader(timeout=settings.REQUEST_TIMEOUT)
        app.state.image_loader = loader
        app.state.fulfillment = FulfillmentService(loader)
        if settings.INGESTION_API_URL:
            app.state.ingestion_client = PdfIngestionClient(
                settings.INGESTION_API_URL, settings.INGESTION_API_KEY, settings.REQUEST_TIMEOUT
            )
        else:
            logger.warning("INGESTION_API_URL is not set; PDF upload is disabled.")
        _service_ready = True
        logger.info("Service initialization done.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Service '{settings.PROJECT_NAME}' starting (mode: {settings.ENVIRONMENT}).")
    await init_db()
    identity = StaticIdentityProvider()
    identity.grant(settings.BASIC_AUTH_USERNAME, settings.ADMIN_ROLE)
    app.state.identity = identity
    yield
    logger.info("Disposing database engine...")
    await engine.dispose()
    logger.info("Service stopped.")


app = FastAPI(
    title="Calendar Template Service",
    description="Template zones, admin authoring and customer fulfillment for customizable calendars",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(DuplicateAssignment)
async def duplicate_handler(request: Request, exc: DuplicateAssignment):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(GeometryError)
@app.exception_handler(InvalidUnit)
@app.exception_handler(InvalidZoneType)
async def invalid_geometry_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


app.include_router(templates_router, prefix=settings.API_V1_STR, tags=["templates"])
app.include_router(customize_router, prefix=settings.API_V1_STR, tags=["customize"])
app.include_router(products_router, prefix=settings.API_V1_STR, tags=["products"])


@app.get("/")
async def root():
    return {"message": "Calendar Template Service", "version": "1.0.0", "status": "ok"}


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": settings.PROJECT_NAME, "services_loaded": _service_ready}
