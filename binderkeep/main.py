import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from binderkeep.api import (
    collection_router,
    groups_router,
    health_router,
    shares_router,
)
from binderkeep.api.deps import get_price_resolver
from binderkeep.config import settings
from binderkeep.db.database import init_db, session_scope
from binderkeep.models.failure import ApiError, KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.getLogger("binderkeep").setLevel(settings.log_level)
    await init_db()

    prices = get_price_resolver()
    async with session_scope() as session:
        loaded = await prices.load_legacy(session)
    logger.info("Loaded %d legacy card prices", loaded)
    yield
    await prices.flush_robust()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("binderkeep"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render every known failure as an ApiError body."""
    body = ApiError(error=exc.to_detail())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


app.include_router(collection_router)
app.include_router(groups_router)
app.include_router(shares_router)
app.include_router(health_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.public_origin],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
