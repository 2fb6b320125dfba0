import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowsim import __version__
from flowsim.config import settings
from flowsim.api.routes import health, simulations

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Flow simulator starting (batch_size=%d, max_iterations=%d)",
        settings.BATCH_SIZE,
        settings.MAX_ITERATIONS,
    )
    yield
    logger.info("Flow simulator shutting down")


app = FastAPI(title="Flow Simulator", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(simulations.router, prefix="/api")
