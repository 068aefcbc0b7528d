import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


PROJECT_ROOT = Path(__file__).resolve().parent.parent

if __package__ in {None, ""}:
    if str(PROJECT_ROOT) not in sys.path:
        sys.path.append(str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from buildinglens.config import get_settings
from buildinglens.database import init_db
from buildinglens.routers import health, identify
from buildinglens.services.identify import get_identification_service


def configure_logging() -> None:
    log_level = getattr(logging, get_settings().log_level, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


configure_logging()

logger = logging.getLogger(__name__)


def prepare_storage() -> None:
    logger.info("Starting BuildingLens application")
    init_db()
    try:
        get_identification_service().building_cache.cleanup_expired()
    except Exception:  # noqa: BLE001
        logger.exception("Expired building cleanup failed during startup")


@asynccontextmanager
async def lifespan(_: FastAPI):
    prepare_storage()
    yield


app = FastAPI(title="BuildingLens", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(identify.router)
app.include_router(health.router)
