from __future__ import annotations

import logging

from recipeflow.app.domain.models import FailureResult, RecipeStatus
from recipeflow.app.infra.db.base import RecipeStore

logger = logging.getLogger(__name__)


class FailureStage:
    """
    Marks a PENDING recipe as FAILED.

    The write is conditional on the record still being PENDING, so repeated
    calls and calls racing a successful extraction are no-ops. Never raises.
    """

    def __init__(self, store: RecipeStore):
        self.store = store

    def run(self, record_id: str) -> FailureResult:
        try:
            updated = self.store.update(
                record_id,
                {"status": RecipeStatus.FAILED},
                only_if={"status": RecipeStatus.PENDING},
            )
        except Exception:
            logger.exception("Failed to mark recipe FAILED: id=%s", record_id)
            return FailureResult(record_id=record_id, written=False)

        if updated is None:
            logger.info("Recipe no longer PENDING, failure not written: id=%s", record_id)
            return FailureResult(record_id=record_id, written=False)

        logger.warning("Recipe marked FAILED: id=%s", record_id)
        return FailureResult(record_id=record_id, written=True)
