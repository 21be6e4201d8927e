"""
Crash-recovery cache for room snapshots.

The in-memory store is the source of truth. Snapshots are written here
opportunistically (debounced, off the event loop) and read back only when a
join names a room the process does not know, e.g. after a restart.
"""

from __future__ import annotations

import asyncio
import datetime
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy import create_engine, MetaData, Table, Column, String, DateTime, JSON
from sqlalchemy import select, update, insert, delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .models import Room


metadata = MetaData()

room_snapshots_table = Table(
    "room_snapshots",
    metadata,
    Column("room_code", String(12), primary_key=True),
    Column("status", String(16), nullable=False),
    Column("snapshot", JSON, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


def make_engine(database_url: str) -> Engine:
    if database_url == "sqlite://" or (database_url.startswith("sqlite") and ":memory:" in database_url):
        # One shared connection, otherwise every checkout gets its own empty database
        return create_engine(database_url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


class SnapshotRepository:
    """Blocking upsert / load / delete of snapshot documents keyed by room code."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_tables(self) -> None:
        metadata.create_all(self.engine)

    def save(self, room_code: str, status: str, snapshot: Dict[str, Any]) -> None:
        now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        values = {"status": status, "snapshot": snapshot, "updated_at": now}
        with self.engine.begin() as conn:
            result = conn.execute(
                update(room_snapshots_table)
                .where(room_snapshots_table.c.room_code == room_code)
                .values(**values)
            )
            if result.rowcount == 0:
                conn.execute(insert(room_snapshots_table).values(room_code=room_code, **values))

    def load(self, room_code: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(room_snapshots_table.c.snapshot).where(room_snapshots_table.c.room_code == room_code)
            ).first()
        return dict(row[0]) if row else None

    def delete(self, room_code: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(room_snapshots_table).where(room_snapshots_table.c.room_code == room_code))


class PersistenceBridge:
    """Best-effort write-through of room snapshots.

    `schedule_save` coalesces changes within `debounce` seconds into one write
    and runs it in a worker thread. Every failure is printed and dropped;
    play continues in memory.
    """

    def __init__(self, repo: SnapshotRepository, debounce: float = 0.3,
                 run_blocking: Optional[Callable[..., Any]] = None):
        self.repo = repo
        self.debounce = debounce
        self._run_blocking = run_blocking or asyncio.to_thread
        self._pending: Dict[str, asyncio.Task] = {}
        # Bumped by delete(); a write queued under an older generation is dropped
        self._generation: Dict[str, int] = {}
        self._lock = threading.Lock()

    def schedule_save(self, room: Room) -> None:
        prev = self._pending.pop(room.code, None)
        if prev is not None and not prev.done():
            prev.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (scripts, sync tests): write straight through
            self._save_now(room)
            return
        self._pending[room.code] = loop.create_task(self._debounced_save(room))

    async def _debounced_save(self, room: Room) -> None:
        try:
            await asyncio.sleep(self.debounce)
            # Snapshot after the wait so the write carries the latest state
            snapshot = room.to_snapshot()
            generation = self._generation.get(room.code, 0)
            await self._run_blocking(self._save_if_current, room.code, room.status, snapshot, generation)
        except asyncio.CancelledError:
            raise
        except (SQLAlchemyError, OSError, TypeError, ValueError) as e:
            print(f"[PERSIST_ERROR] save {room.code}: {e}", flush=True)
        finally:
            if self._pending.get(room.code) is asyncio.current_task():
                self._pending.pop(room.code, None)

    def _save_if_current(self, room_code: str, status: str, snapshot: Dict[str, Any], generation: int) -> bool:
        """Upsert unless the room was deleted after this write was queued. Runs in the worker thread."""
        with self._lock:
            if self._generation.get(room_code, 0) != generation:
                return False
            self.repo.save(room_code, status, snapshot)
            return True

    def _save_now(self, room: Room) -> None:
        try:
            self.repo.save(room.code, room.status, room.to_snapshot())
        except (SQLAlchemyError, OSError, TypeError, ValueError) as e:
            print(f"[PERSIST_ERROR] save {room.code}: {e}", flush=True)

    def load(self, room_code: str) -> Optional[Dict[str, Any]]:
        try:
            return self.repo.load(room_code)
        except SQLAlchemyError as e:
            print(f"[PERSIST_ERROR] load {room_code}: {e}", flush=True)
            return None

    def delete(self, room_code: str) -> None:
        task = self._pending.pop(room_code, None)
        if task is not None and not task.done():
            task.cancel()
        with self._lock:
            self._generation[room_code] = self._generation.get(room_code, 0) + 1
            try:
                self.repo.delete(room_code)
            except SQLAlchemyError as e:
                print(f"[PERSIST_ERROR] delete {room_code}: {e}", flush=True)

    async def flush(self) -> None:
        """Wait for every scheduled write (used on shutdown)."""
        tasks = [t for t in self._pending.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
