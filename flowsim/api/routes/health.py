from fastapi import APIRouter

from flowsim import __version__
from flowsim.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    return {
        "status": "ok",
        "version": __version__,
        "engine": {
            "batch_size": settings.BATCH_SIZE,
            "max_iterations": settings.MAX_ITERATIONS,
        },
    }
