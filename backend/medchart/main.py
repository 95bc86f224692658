"""
MedChart - Patient Charting & Medication Administration API
Barcode-verified medication administration with a full audit trail.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .core.config import settings
from .models.base import Base, engine
from .models import audit, lab, medication, patient  # noqa: F401  register tables
from .api import administrations, audit as audit_api, labs, medicines, patients
from .dependencies import get_storage
from .seed_demo import seed_demo_data

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.STORAGE_BACKEND == "database":
        # NOTE: schema is created directly; there are no migrations
        Base.metadata.create_all(bind=engine)
    if settings.SEED_DEMO_DATA:
        seed_demo_data(get_storage())
    logger.info("%s started with %s storage", settings.APP_NAME, settings.STORAGE_BACKEND)
    yield


app = FastAPI(
    title="MedChart Patient Charting API",
    description=(
        "Patient charting backend: demographics, prescriptions, barcode-verified "
        "medication administration, simulated lab orders and an audit trail."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: Restrict to specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(patients.router, prefix="/api/v1")
app.include_router(medicines.router, prefix="/api/v1")
app.include_router(administrations.router, prefix="/api/v1")
app.include_router(audit_api.router, prefix="/api/v1")
app.include_router(labs.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
