from __future__ import annotations

import logging
from typing import Any, Callable

from recipeflow.app.domain.models import (
    ChangeEvent,
    NutritionStatus,
    RecipeStatus,
    StageName,
)

logger = logging.getLogger(__name__)

StageHandler = Callable[[str], Any]


class StageTriggerRouter:
    """
    Decides which stages a record change should trigger.

    Routing table, evaluated on (previous, current):
    - PENDING without structured content -> EXTRACTION
    - became SUCCESS (auto-enrich on) -> NUTRITION if still pending,
      IMAGE if no image yet

    Routing itself has no side effects. Stages re-check their own
    preconditions, so duplicate or out-of-order events are harmless.
    """

    def __init__(self, auto_enrich: bool = True):
        self.auto_enrich = auto_enrich
        self._handlers: dict[StageName, StageHandler] = {}

    def register(self, stage: StageName, handler: StageHandler) -> None:
        self._handlers[stage] = handler

    def route(self, event: ChangeEvent) -> list[StageName]:
        current = event.record
        previous = event.previous

        if current.status == RecipeStatus.PENDING and current.structured_content is None:
            return [StageName.EXTRACTION]

        became_success = current.status == RecipeStatus.SUCCESS and (
            previous is None or previous.status != RecipeStatus.SUCCESS
        )
        if not (became_success and self.auto_enrich):
            return []

        stages = []
        if current.nutritional_information.status == NutritionStatus.PENDING:
            stages.append(StageName.NUTRITION)
        if not current.image_url:
            stages.append(StageName.IMAGE)
        return stages

    def dispatch(self, event: ChangeEvent) -> list[StageName]:
        """Route ``event`` and invoke each handler inline. Returns the stages invoked."""
        try:
            stages = self.route(event)
        except Exception:
            logger.exception("Routing failed: id=%s", event.record_id)
            return []

        invoked = []
        for stage in stages:
            if self.dispatch_direct(event.record_id, stage):
                invoked.append(stage)
        return invoked

    def dispatch_direct(self, record_id: str, stage: StageName) -> bool:
        handler = self._handlers.get(stage)
        if handler is None:
            logger.warning("No handler registered: stage=%s, id=%s", stage.value, record_id)
            return False

        try:
            handler(record_id)
        except Exception:
            logger.exception("Stage handler failed: stage=%s, id=%s", stage.value, record_id)
            return False
        return True
