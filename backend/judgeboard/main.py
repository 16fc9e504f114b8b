import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .leetcode_routes import router as leetcode_router
from .logging_config import configure_logging
from .services import shutdown_services


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await shutdown_services()


app = FastAPI(title="Judgeboard Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(leetcode_router)

settings_snapshot = get_settings()
logger.info("Backend starting with cache backend: %s", settings_snapshot.cache_backend)
logger.info("Roster configured with %s user(s)", len(settings_snapshot.roster))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "cache_backend": settings.cache_backend}
