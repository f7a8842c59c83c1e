"""
NeoLink - Ward Patient Management API
NICU/PICU/SNCU patient records, outcome lifecycle, analytics and AI assistant.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import admin, ai, analytics, patients
from .core.audit_middleware import AuditMiddleware
from .core.config import settings
from .models import audit, progress_note  # noqa: F401 - register tables
from .models.base import Base, engine
from .seed_demo import seed_demo_data

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create all database tables
# NOTE: In production, use Alembic migrations instead of create_all()
Base.metadata.create_all(bind=engine)

# Seed the demo ward (idempotent)
if settings.SEED_DEMO_DATA:
    seed_demo_data()

app = FastAPI(
    title="NeoLink Ward Service API",
    description=(
        "Patient management for neonatal and paediatric intensive care units: "
        "admission lifecycle, period-filtered analytics, mortality reporting "
        "and an AI clinical assistant."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: Restrict to specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)

app.include_router(patients.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(ai.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
