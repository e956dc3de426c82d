# recipeflow/app/main.py
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recipeflow import __version__
from recipeflow.app.config import settings
from recipeflow.app.deps import build_model_clients, build_storage, get_service_store
from recipeflow.app.routers.feedback import router as feedback_router
from recipeflow.app.routers.recipes import router as recipes_router
from workers.pipeline import local as local_pipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Recipe Processing API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recipes_router)
app.include_router(feedback_router)


@app.on_event("startup")
def startup() -> None:
    # The memory store is private to this process, so the pipeline has to run here too.
    if settings.STORE_BACKEND == "memory":
        storage = build_storage()
        gemini, generator = build_model_clients()
        local_pipeline.start_local_pipeline(
            get_service_store(),
            storage,
            gemini,
            generator,
            poll_interval_seconds=settings.LOCAL_POLL_INTERVAL_SECONDS,
        )


@app.on_event("shutdown")
def shutdown() -> None:
    local_pipeline.stop_local_pipeline()


@app.get("/health")
def health():
    return {"ok": True, "env": settings.APP_ENV, "store": settings.STORE_BACKEND}
