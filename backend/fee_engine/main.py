import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fee_engine.core.config import settings
from fee_engine.core.exceptions import register_exception_handlers
from fee_engine.models import Base  # noqa: F401 - register models
from fee_engine.routers import auth, client_fees, fee_schedules, health

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Fee Engine API",
    description="Fee schedules, client fee assignments and transaction fee resolution",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

prefix = settings.API_V1_PREFIX
app.include_router(health.router, prefix=f"{prefix}/health")
app.include_router(auth.router, prefix=f"{prefix}/auth")
app.include_router(fee_schedules.router, prefix=f"{prefix}/fee-schedules")
app.include_router(client_fees.router, prefix=f"{prefix}/clients")


@app.on_event("startup")
async def startup():
    # Seed the first back-office user when configured and none exist yet
    if not settings.BOOTSTRAP_ADMIN_USERNAME or not settings.BOOTSTRAP_ADMIN_PASSWORD:
        return
    from fee_engine.core.database import SessionLocal
    from fee_engine.core.security import get_password_hash
    from fee_engine.models.back_office_user import BackOfficeUser
    db = SessionLocal()
    try:
        if db.query(BackOfficeUser).first() is None:
            db.add(
                BackOfficeUser(
                    id=str(uuid.uuid4()),
                    username=settings.BOOTSTRAP_ADMIN_USERNAME,
                    hashed_password=get_password_hash(settings.BOOTSTRAP_ADMIN_PASSWORD),
                    is_active=True,
                )
            )
            db.commit()
            logger.info("Seeded back-office user %s", settings.BOOTSTRAP_ADMIN_USERNAME)
    finally:
        db.close()
