"""
Read-side helpers shared by the engine components.

Tables are append-only, so one logical record may be spread over
several rows with the same id. ``reconcile_latest`` is the single place
where that is resolved: the row with the highest write stamp wins, and
among equal stamps the one that appears later.
"""

import logging
from typing import Any, Optional

from .base import WRITTEN_AT, Filter, VectorStore

logger = logging.getLogger("guru.memory.query")

DEFAULT_PAGE_SIZE = 500


def reconcile_latest(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Collapse duplicate-id rows to the most recently written one.

    The output keeps the order in which each id first appeared.
    """
    latest: dict[str, dict[str, Any]] = {}
    for row in rows:
        key = row["id"]
        current = latest.get(key)
        if current is None or row.get(WRITTEN_AT, 0) >= current.get(WRITTEN_AT, 0):
            latest[key] = row
    return list(latest.values())


async def scan_all(
    store: VectorStore,
    table: str,
    filter: Optional[Filter] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[dict[str, Any]]:
    """Read every matching row, one page at a time."""
    rows: list[dict[str, Any]] = []
    offset = 0
    while True:
        page = await store.scan(table, filter=filter, limit=page_size, offset=offset)
        rows.extend(page)
        if len(page) < page_size:
            break
        offset += page_size

    logger.debug(f"Scanned {len(rows)} row(s) from {table}")
    return rows


async def current_rows(
    store: VectorStore,
    table: str,
    filter: Optional[Filter] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[dict[str, Any]]:
    """Scan a table and return one reconciled row per record id."""
    return reconcile_latest(await scan_all(store, table, filter=filter, page_size=page_size))
