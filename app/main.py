import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.logging_config import setup_logging

# ✅ Import All API Routes
from app.api.routes import agency, agency_jobs, admin_agency, client_verification, health

setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Agency Authorization API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ DATABASE
# ============================================

@app.on_event("startup")
def apply_migrations():
    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()
    logger.info("Agency Authorization API started")


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(health.router)
app.include_router(agency.router)
app.include_router(agency_jobs.router)
app.include_router(client_verification.router)
app.include_router(admin_agency.router)


@app.get("/")
def root():
    return {"status": "Agency Authorization API running"}
