# workers/pipeline/local.py
"""
Pipeline worker running on a background thread of the API process.

With STORE_BACKEND=memory the records only exist inside the API process, so
the API starts this on startup and hands it the store its routes use.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Optional

from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.image_generator import ImageGenerator
from workers.pipeline.config import WorkerConfig, get_config
from workers.pipeline.main import PipelineWorker, build_pipeline

logger = logging.getLogger("pipeline-worker")


class LocalPipeline:
    def __init__(self, worker: PipelineWorker):
        self.worker = worker
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(target=self.worker.run, name="local-pipeline", daemon=True)
            self._thread.start()
        logger.info("Local pipeline started")

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self.worker.stop()
        thread.join(timeout)
        logger.info("Local pipeline stopped")


def create_local_pipeline(
    store: RecipeStore,
    storage: StorageProvider,
    gemini: GeminiClient,
    generator: ImageGenerator,
    poll_interval_seconds: float,
    config: Optional[WorkerConfig] = None,
) -> LocalPipeline:
    config = dataclasses.replace(
        config or get_config(),
        store_backend="memory",
        poll_interval_seconds=poll_interval_seconds,
        max_poll_interval_seconds=max(poll_interval_seconds, 1.0),
    )
    notifier, router = build_pipeline(config, store, storage, gemini, generator)
    return LocalPipeline(PipelineWorker(config=config, notifier=notifier, router=router))


_pipeline: Optional[LocalPipeline] = None


def start_local_pipeline(
    store: RecipeStore,
    storage: StorageProvider,
    gemini: GeminiClient,
    generator: ImageGenerator,
    poll_interval_seconds: float = 1.0,
) -> LocalPipeline:
    global _pipeline
    if _pipeline is None or not _pipeline.running:
        _pipeline = create_local_pipeline(store, storage, gemini, generator, poll_interval_seconds)
        _pipeline.start()
    return _pipeline


def stop_local_pipeline(timeout: Optional[float] = 30.0) -> None:
    global _pipeline
    if _pipeline is not None:
        _pipeline.stop(timeout)
        _pipeline = None
