"""Shared SQLite PRAGMA helpers for consistent performance tuning."""

from __future__ import annotations

import sqlite3


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    mmap_size_bytes: int = 134217728,
    temp_store: str = "MEMORY",
    query_only: bool = True,
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Apply read-optimized PRAGMAs to a snapshot reader."""
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute(f"PRAGMA mmap_size = {int(mmap_size_bytes)}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    mmap_size_bytes: int = 134217728,
    temp_store: str = "MEMORY",
    busy_timeout_ms: int = 0,
    journal_mode: str = "WAL",
) -> None:
    """Apply write-optimized PRAGMAs to the single writer connection.

    WAL lets snapshot readers keep going while the writer holds its lock.
    """
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute(f"PRAGMA journal_mode = {journal_mode}")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute(f"PRAGMA mmap_size = {int(mmap_size_bytes)}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")
