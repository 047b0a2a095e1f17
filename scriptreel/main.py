import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from dotenv import load_dotenv

load_dotenv()

from . import metrics
from .pipeline import script_router, heygen_router, video_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("scriptreel starting up...")
    metrics.set_gauge("start_time", time.time())
    yield
    logger.info("scriptreel shutting down...")


app = FastAPI(lifespan=lifespan)
app.include_router(script_router)
app.include_router(heygen_router)
app.include_router(video_router)


@app.get("/health")
def health_check():
    """Verify the service is running and credentials are configured."""
    return {
        "status": "ok",
        "heygen_api_key_set": bool(os.environ.get("HEYGEN_API_KEY")),
        "anthropic_api_key_set": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "supabase_url_set": bool(os.environ.get("SUPABASE_URL")),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Snapshot of probe/poll metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    uvicorn.run("scriptreel.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8080")))
