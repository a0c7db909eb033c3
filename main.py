import logging
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from config import Config
from database import SessionLocal, init_db
from expiry_reminders import scan_expiring_documents
from router import get_dispatcher, router

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

EXPIRY_SCAN_JOB_ID = "expiry_scan"


def run_expiry_scan():
    with SessionLocal() as db:
        summary = scan_expiring_documents(db, get_dispatcher())
    logger.info("Scheduled expiry scan finished: %s", summary.model_dump())


def create_scheduler():
    scheduler = BackgroundScheduler(timezone=Config.REFERENCE_TIMEZONE)
    scheduler.add_job(
        run_expiry_scan,
        "cron",
        hour=Config.EXPIRY_SCAN_HOUR,
        minute=Config.EXPIRY_SCAN_MINUTE,
        id=EXPIRY_SCAN_JOB_ID,
    )  # daily expiry scan
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler = create_scheduler()
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Pocket Organizer Triggers", lifespan=lifespan)
app.include_router(router, tags=["triggers"])


@app.get("/")
def home():
    return {"message": "Pocket Organizer trigger service"}


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
