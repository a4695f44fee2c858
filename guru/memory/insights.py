"""
Insight Generator - rule-based observations about the memory population.

Each rule looks at the current memories and may produce one insight.
Rules are plain functions registered in RULES; the generator runs the
configured subset in order. Only ``usage_summary`` is enabled by
default.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .base import EMBEDDING_DIMENSION, INSIGHTS, MEMORIES, InsightRecord, MemoryRecord, VectorStore
from .embeddings import EmbeddingService
from .query import DEFAULT_PAGE_SIZE, current_rows

logger = logging.getLogger("guru.memory.insights")


@dataclass
class InsightDraft:
    """What a rule produces; the generator turns it into a stored InsightRecord."""
    text: str
    category: str
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict)


InsightRule = Callable[[list[MemoryRecord], datetime], Optional[InsightDraft]]


def usage_summary(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    count = len(memories)
    if count <= 10:
        return None
    return InsightDraft(
        text=(
            f"You have stored {count} memories. "
            "Review them regularly to keep your knowledge focused."
        ),
        category="usage",
        confidence=1.0,
        metadata={"memory_count": count},
    )


def frequent_type(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    counts = Counter(m.type for m in memories)
    if not counts:
        return None
    memory_type, count = counts.most_common(1)[0]
    if count <= 5:
        return None
    return InsightDraft(
        text=(
            f"You frequently use {memory_type} features ({count} times). "
            "Consider creating shortcuts or templates."
        ),
        category="productivity",
        confidence=min(count / 20, 0.95),
        metadata={"type": memory_type, "count": count},
    )


def top_tags(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    counts = Counter(tag for m in memories for tag in m.tags)
    top = counts.most_common(3)
    if not top or top[0][1] <= 3:
        return None
    listing = ", ".join(f"{tag} ({count})" for tag, count in top)
    return InsightDraft(
        text=f"Your most used tags are: {listing}. Consider organizing related items.",
        category="organization",
        confidence=0.8,
        metadata={"top_tags": [[tag, count] for tag, count in top]},
    )


def frequent_context(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    counts = Counter(ctx for m in memories for ctx in m.context)
    frequent = [(ctx, count) for ctx, count in counts.most_common() if count > 5]
    if not frequent:
        return None
    return InsightDraft(
        text=f"You often work in these contexts: {', '.join(ctx for ctx, _ in frequent[:3])}",
        category="workflow",
        confidence=0.85,
        metadata={"contexts": [[ctx, count] for ctx, count in frequent]},
    )


def daily_activity(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    cutoff = now - timedelta(hours=24)
    recent = [m for m in memories if m.created_at >= cutoff]
    if len(recent) <= 10:
        return None
    return InsightDraft(
        text=(
            f"High activity today! {len(recent)} actions in the last 24 hours. "
            "You're on a productive streak."
        ),
        category="motivation",
        confidence=0.9,
        metadata={"recent_count": len(recent)},
    )


def low_confidence(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    weak = [m for m in memories if m.confidence < 0.6]
    if len(weak) <= 5:
        return None
    return InsightDraft(
        text=(
            f"{len(weak)} items have low confidence scores. "
            "Consider reviewing or re-organizing them."
        ),
        category="quality",
        confidence=0.75,
        metadata={"low_confidence_count": len(weak)},
    )


def frequently_accessed(memories: list[MemoryRecord], now: datetime) -> Optional[InsightDraft]:
    popular = sorted(
        (m for m in memories if m.access_count > 3),
        key=lambda m: m.access_count,
        reverse=True,
    )[:3]
    if not popular:
        return None
    return InsightDraft(
        text=(
            f"You frequently reference {len(popular)} items. "
            "Consider pinning them for quick access."
        ),
        category="efficiency",
        confidence=0.85,
        metadata={
            "popular_items": [
                {"id": m.id, "count": m.access_count, "content": m.content[:50]}
                for m in popular
            ]
        },
    )


RULES: dict[str, InsightRule] = {
    "usage_summary": usage_summary,
    "frequent_type": frequent_type,
    "top_tags": top_tags,
    "frequent_context": frequent_context,
    "daily_activity": daily_activity,
    "low_confidence": low_confidence,
    "frequently_accessed": frequently_accessed,
}

DEFAULT_RULES = ("usage_summary",)


class InsightGenerator:
    """
    Synthesizes, lists and dismisses insights.

    Dismissal appends a superseding row; listing reconciles rows by id
    (latest write wins) before dropping dismissed insights.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        rules: Optional[list[str]] = None,
        list_limit: int = 20,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.list_limit = list_limit
        self.page_size = page_size

        names = list(rules) if rules is not None else list(DEFAULT_RULES)
        unknown = [name for name in names if name not in RULES]
        if unknown:
            raise ValueError(f"Unknown insight rule(s): {', '.join(unknown)}")
        self.rules = names

    async def generate_insights(self) -> list[InsightRecord]:
        """
        Run the configured rules over the current memories and store
        whatever they produce.

        Returns:
            The newly stored insights, in rule order
        """
        rows = await current_rows(self.vector_store, MEMORIES.name, page_size=self.page_size)
        memories = [MemoryRecord.from_row(row) for row in rows]
        if not memories:
            return []

        now = datetime.now()
        drafts = []
        for name in self.rules:
            draft = RULES[name](memories, now)
            if draft is not None:
                drafts.append(draft)

        if not drafts:
            logger.info("Generated 0 new insights")
            return []

        vectors = await self.embedding_service.embed_batch([d.text for d in drafts])
        insights = [
            InsightRecord(
                insight_text=draft.text,
                category=draft.category,
                vector=vector,
                confidence=draft.confidence,
                created_at=now,
                dismissed=False,
                metadata=draft.metadata,
            )
            for draft, vector in zip(drafts, vectors)
        ]

        await self.vector_store.insert(INSIGHTS.name, [i.to_row() for i in insights])
        logger.info(f"Generated {len(insights)} new insights")
        return insights

    async def list_insights(self, limit: Optional[int] = None) -> list[InsightRecord]:
        """
        Current, non-dismissed insights.

        The order is not chronological and callers must not rely on it.
        """
        limit = self.list_limit if limit is None else limit
        rows = await current_rows(self.vector_store, INSIGHTS.name, page_size=self.page_size)
        active = [InsightRecord.from_row(row) for row in rows if not row.get("dismissed")]
        return active[:limit]

    async def dismiss_insight(self, insight_id: str) -> InsightRecord:
        """
        Mark an insight as dismissed by appending a superseding row.

        Dismissing an unknown or already dismissed insight is not an error.
        """
        rows = await current_rows(
            self.vector_store,
            INSIGHTS.name,
            filter={"id": insight_id},
            page_size=self.page_size,
        )

        if rows:
            dismissed = InsightRecord.from_row(rows[-1])
            if len(dismissed.vector) != EMBEDDING_DIMENSION:
                dismissed.vector = [0.0] * EMBEDDING_DIMENSION
            dismissed.dismissed = True
        else:
            dismissed = InsightRecord(
                id=insight_id,
                insight_text="dismissed",
                category="dismissed",
                vector=[0.0] * EMBEDDING_DIMENSION,
                confidence=0.0,
                dismissed=True,
            )

        await self.vector_store.insert(INSIGHTS.name, [dismissed.to_row()])
        logger.info(f"Insight dismissed: {insight_id}")
        return dismissed
