"""
Pattern Tracker - consolidates recurring usage patterns.

Each observation is appended as a new row. Before appending, the
closest existing pattern is looked up; if it counts as the same
pattern, the new row continues its frequency.

Without a match threshold the closest pattern ALWAYS counts as the
same one, even when it is unrelated. Set ``match_threshold`` to only
consolidate patterns within that L2 distance.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from .base import PATTERNS, PatternRecord, VectorStore
from .embeddings import EmbeddingService

logger = logging.getLogger("guru.memory.patterns")


class PatternTracker:
    """Tracks how often similar patterns recur."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        match_threshold: Optional[float] = None,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.match_threshold = match_threshold

    def _is_same_pattern(self, distance: float) -> bool:
        return self.match_threshold is None or distance <= self.match_threshold

    async def track_pattern(self, pattern: PatternRecord) -> PatternRecord:
        """
        Record an observation of ``pattern``.

        The read-then-append sequence is not atomic; concurrent callers
        can lose an increment.

        Returns:
            A copy of ``pattern`` as appended, with its consolidated
            frequency. The argument itself is left unchanged.
        """
        nearest = await self.vector_store.nearest_neighbors(
            PATTERNS.name,
            pattern.vector,
            limit=1,
        )

        if nearest and self._is_same_pattern(nearest[0].distance):
            prior = nearest[0].row
            pattern = replace(
                pattern,
                frequency=(prior.get("frequency") or 0) + 1,
                last_seen=datetime.now(),
            )
            logger.debug(
                f"Pattern {pattern.id} matches {prior['id']} "
                f"(distance={nearest[0].distance:.4f}), frequency={pattern.frequency}"
            )
        else:
            pattern = replace(pattern)
            if nearest:
                logger.debug(
                    f"Pattern {pattern.id} is new: nearest distance "
                    f"{nearest[0].distance:.4f} exceeds {self.match_threshold}"
                )

        await self.vector_store.insert(PATTERNS.name, [pattern.to_row()])
        logger.info(f"Pattern tracked: {pattern.id}")
        return pattern

    async def observe(
        self,
        pattern_type: str,
        entity_ids: list[str],
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> PatternRecord:
        """Embed a description of a pattern and track it."""
        vector = await self.embedding_service.embed(description)
        pattern = PatternRecord(
            pattern_type=pattern_type,
            entity_ids=list(entity_ids),
            vector=vector,
            frequency=0,
            metadata={"description": description, **(metadata or {})},
        )
        return await self.track_pattern(pattern)
