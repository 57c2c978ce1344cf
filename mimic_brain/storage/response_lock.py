"""Cross-process response lock for bots sharing one voice session."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import random
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger("mimic.storage.response_lock")


class LockRecord(BaseModel):
    """The single persisted record: who is answering whom, since when."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    speaker_id: str = Field(alias="userId")
    owner_id: str = Field(alias="botId")
    timestamp: int = Field(description="Acquisition time, epoch milliseconds")

    def age_seconds(self, now_ms: int) -> float:
        return (now_ms - self.timestamp) / 1000.0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ResponseLock:
    """File-backed mutual exclusion over who replies in a voice session.

    Every bot process joined to the same session points at the same lock
    file. Only one record exists at a time, so holding the lock for one
    speaker also blocks every other speaker until release or expiry.
    Acquisition is decided by an exclusive create, never by read-then-write.
    """

    def __init__(
        self,
        lock_dir: Path,
        session_key: str,
        ttl_seconds: float = 10.0,
        max_jitter_ms: int = 200,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.lock_dir = Path(lock_dir)
        self.session_key = session_key
        self.ttl_seconds = ttl_seconds
        self.max_jitter_ms = max_jitter_ms
        self._clock = clock or time.time
        self._rng = rng or random.Random()

    @property
    def path(self) -> Path:
        return self.lock_dir / f"response-{self.session_key}.lock"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------
    # Record I/O
    # ------------------------------------------------------------------

    def _read_raw(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _parse(self, raw: str) -> Optional[LockRecord]:
        try:
            return LockRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            return None

    def _unlink_if_unchanged(self, raw: str) -> bool:
        """Remove the lock file only if it still holds ``raw``."""
        if self._read_raw() != raw:
            return False
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.debug("Could not remove lock file %s: %s", self.path, e)
            return False
        return True

    def _file_age_seconds(self) -> Optional[float]:
        try:
            return self._clock() - self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _unparseable_is_dead(self) -> bool:
        # Empty or partial content may be another process mid-write
        age = self._file_age_seconds()
        return age is not None and age >= self.ttl_seconds

    def current(self) -> Optional[LockRecord]:
        """The current record, or None if absent or unparseable."""
        raw = self._read_raw()
        if raw is None:
            return None
        return self._parse(raw)

    def _clear_if_dead(self) -> bool:
        """Delete a corrupted or expired record. True if the slot is free now."""
        raw = self._read_raw()
        if raw is None:
            return True
        record = self._parse(raw)
        if record is None:
            if not self._unparseable_is_dead():
                return False
            logger.warning("Unreadable lock record in %s past TTL, removing", self.path)
            self._unlink_if_unchanged(raw)
            return True
        if record.age_seconds(self._now_ms()) >= self.ttl_seconds:
            logger.info(
                "Reclaiming stale lock: speaker %s held by %s",
                record.speaker_id, record.owner_id,
            )
            self._unlink_if_unchanged(raw)
            return True
        return False

    # ------------------------------------------------------------------
    # Acquire / Release
    # ------------------------------------------------------------------

    async def try_acquire(self, speaker_id: str, owner_id: str) -> bool:
        """Acquire the session's lock for *speaker_id*. False on contention."""
        if not self._clear_if_dead():
            record = self.current()
            logger.debug(
                "Lock held by %s for speaker %s (requested by %s for %s)",
                record.owner_id if record else "?",
                record.speaker_id if record else "?",
                owner_id, speaker_id,
            )
            return False

        if self.max_jitter_ms > 0:
            await asyncio.sleep(self._rng.uniform(0, self.max_jitter_ms) / 1000.0)

        record = LockRecord(speaker_id=speaker_id, owner_id=owner_id, timestamp=self._now_ms())
        if not self._publish(record):
            return False

        logger.info("Lock acquired: speaker %s by %s", speaker_id, owner_id)
        return True

    def _publish(self, record: LockRecord) -> bool:
        """Exclusively create the lock file with *record* as its full content.

        The record is written to a private file first and hard-linked into
        place, so the lock path never holds a partial record.
        """
        staging = self.lock_dir / f".{self.path.name}.{os.getpid()}.{uuid.uuid4().hex}"
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            staging.write_text(record.to_json(), encoding="utf-8")
            os.link(staging, self.path)
        except FileExistsError:
            logger.debug(
                "Lost lock race for speaker %s (owner %s)", record.speaker_id, record.owner_id
            )
            return False
        except OSError as e:
            logger.error("Failed to create lock file %s: %s", self.path, e)
            return False
        finally:
            try:
                staging.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.debug("Could not remove staging file %s: %s", staging, e)
        return True

    async def release(self, speaker_id: str, owner_id: str) -> bool:
        """Release the lock if *owner_id* holds it for *speaker_id*."""
        raw = self._read_raw()
        if raw is None:
            return False
        record = self._parse(raw)
        if record is None or record.speaker_id != speaker_id or record.owner_id != owner_id:
            logger.debug(
                "Release refused: speaker %s by %s does not match current record",
                speaker_id, owner_id,
            )
            return False
        released = self._unlink_if_unchanged(raw)
        if released:
            logger.info("Lock released: speaker %s by %s", speaker_id, owner_id)
        return released

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def reclaim_stale(self) -> bool:
        """Delete the record if it is past its TTL. True if removed.

        Unreadable records age by file mtime instead of their timestamp.
        """
        raw = self._read_raw()
        if raw is None:
            return False
        record = self._parse(raw)
        if record is None:
            if not self._unparseable_is_dead():
                return False
            logger.warning("Unreadable lock record in %s past TTL, removing", self.path)
        elif record.age_seconds(self._now_ms()) < self.ttl_seconds:
            return False
        else:
            logger.warning(
                "Expired stale lock: speaker %s held by %s",
                record.speaker_id, record.owner_id,
            )
        return self._unlink_if_unchanged(raw)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Reclaim stale records every *interval_seconds* until cancelled."""
        logger.debug("Lock sweeper started for %s (every %.1fs)", self.path, interval_seconds)
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.reclaim_stale()
            except OSError as e:
                logger.debug("Lock sweep failed: %s", e)
