# sync_stays/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sync_stays.config import ALLOWED_ORIGINS
from sync_stays.logging_config import setup_logging
from sync_stays.middleware import RequestIDMiddleware
from sync_stays.routes.health import router as health_router
from sync_stays.routes.metrics import router as metrics_router
from sync_stays.routes.stays import router as stays_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Stays Sync API",
    description="Calendar reconciliation and guest enrichment for short-term rental properties",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(stays_router, prefix="/stays", tags=["Stays"])
