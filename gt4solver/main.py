"""FastAPI application exposing the solver over REST."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gt4solver.api.routes import router
from gt4solver.database import close_db, get_db
from gt4solver.middleware.rate_limit import RateLimitMiddleware
from gt4solver.services.constants import default_provider
from gt4solver.services.solvers import default_registry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("gt4solver starting, initialising database")
    await get_db()
    yield
    logger.info("gt4solver shutting down, closing database")
    await close_db()


app = FastAPI(
    title="gt4solver",
    description="Signs and submits GeeTest v4 challenge answers",
    version="1.0.0",
    lifespan=lifespan,
)
# Slide and icon solvers need an image matcher; register them on app.state.solvers
app.state.solvers = default_registry()
app.state.constants_provider = default_provider()

app.add_middleware(RateLimitMiddleware)
app.include_router(router)
