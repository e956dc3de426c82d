# recipeflow/app/infra/db/base.py
"""
Abstract base class for the recipe record store.
This interface allows easy swapping between different document backends.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Iterator, Mapping, Optional

from recipeflow.app.domain.models import AuthContext, RecipeRecord, RecordFilter, Snapshot


class RecipeStore(ABC):
    """
    Abstract interface for recipe record operations.

    Every instance is bound to an AuthContext. Non-service contexts only see
    and mutate records whose ``owners`` include their identity.

    Implementations:
    - SupabaseRecipeStore: Postgres table behind Supabase
    - InMemoryRecipeStore: process-local store for local runs and tests
    """

    def __init__(self, auth: AuthContext):
        self.auth = auth

    @abstractmethod
    def with_auth(self, auth: AuthContext) -> "RecipeStore":
        """Return a store sharing the same backend but bound to ``auth``."""
        pass

    @abstractmethod
    def create(self, fields: Mapping[str, Any]) -> RecipeRecord:
        """
        Create a record. The store assigns ``id``, ``created_at`` and ``updated_at``.

        Args:
            fields: Initial column values

        Returns:
            The created RecipeRecord
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[RecipeRecord]:
        """
        Get a record by ID.

        Returns:
            The record, or None if it does not exist or is not visible
        """
        pass

    @abstractmethod
    def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        only_if: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RecipeRecord]:
        """
        Shallow-merge ``fields`` into a record. Unspecified fields are untouched.

        Args:
            record_id: The record to update
            fields: Top-level columns to overwrite
            only_if: Field path -> expected value. Paths may address one level
                of a JSON column, e.g. ``"nutritional_information.status"``.
                When any value does not match, nothing is written.

        Returns:
            The updated record, or None if no row matched

        Raises:
            RecordStoreError: If the backend call fails
        """
        pass

    @abstractmethod
    def list(self, record_filter: Optional[RecordFilter] = None) -> list[RecipeRecord]:
        """
        List records, newest first.
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        record_filter: Optional[RecordFilter] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[Snapshot]:
        """
        Yield snapshots of the records matching ``record_filter`` whenever they
        may have changed, until ``stop_event`` is set.
        """
        pass

    def _owner_identity(self) -> Optional[str]:
        if self.auth.is_service:
            return None
        return self.auth.identity_id
