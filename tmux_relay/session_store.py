"""File-per-record persistence for relay sessions."""

import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .models import SessionRecord, utcnow

logger = logging.getLogger(__name__)


class StoreWriteError(RuntimeError):
    """Raised when a session record cannot be persisted."""


class StoreFullError(StoreWriteError):
    """Raised when the store already holds max_records live records."""


class SessionStore:
    """
    Stores each session record as ``<sessions_dir>/<id>.json``.

    There is no index: token lookups scan every record file. That is fine for
    the handful of sessions a single user has in flight, and max_records caps
    how large the scan can get.
    """

    def __init__(
        self,
        sessions_dir: str,
        max_records: int = 500,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.sessions_dir = Path(sessions_dir).expanduser()
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.max_records = max_records
        self.clock = clock or utcnow

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def _read(self, path: Path) -> Optional[SessionRecord]:
        """Read one record file. Unreadable or corrupt files are skipped."""
        try:
            with open(path) as f:
                return SessionRecord.from_dict(json.load(f))
        except FileNotFoundError:
            # Removed between listing and reading
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Skipping unreadable session record {path.name}: {e}")
            return None

    def _iter_records(self):
        for path in sorted(self.sessions_dir.glob("*.json")):
            record = self._read(path)
            if record is not None:
                yield record

    def count(self) -> int:
        """Number of persisted record files, live or expired."""
        return sum(1 for _ in self.sessions_dir.glob("*.json"))

    def create(self, record: SessionRecord) -> str:
        """
        Persist a new record.

        The JSON is written to a temp file and hard-linked into place, so an
        existing record is never overwritten and readers never see a partial
        file.

        Returns:
            The record id

        Raises:
            StoreFullError: max_records live records already exist
            StoreWriteError: record exists or the directory is not writable
        """
        if self.count() >= self.max_records:
            self.sweep_expired()
            if self.count() >= self.max_records:
                raise StoreFullError(
                    f"Session store full ({self.max_records} records) in {self.sessions_dir}"
                )

        path = self._path(record.id)
        temp_file = self.sessions_dir / f".{record.id}.{uuid.uuid4().hex[:8]}.tmp"
        try:
            with open(temp_file, "w") as f:
                json.dump(record.to_dict(), f, indent=2)
            os.link(temp_file, path)
        except FileExistsError:
            raise StoreWriteError(f"Session record {record.id} already exists")
        except OSError as e:
            logger.error(f"Failed to write session record {record.id} to {self.sessions_dir}: {e}")
            raise StoreWriteError(f"Failed to write session record {record.id}: {e}") from e
        finally:
            try:
                temp_file.unlink()
            except FileNotFoundError:
                pass

        logger.debug(f"Session record created: {record.id}")
        return record.id

    def get(self, session_id: str) -> Optional[SessionRecord]:
        """Get a record by id, expired or not."""
        return self._read(self._path(session_id))

    def find_by_token(self, token: str) -> Optional[SessionRecord]:
        """
        Find the live record holding a token.

        Expired records are never returned, even while still on disk. If more
        than one live record holds the token, the most recently created wins.
        """
        now = self.clock()
        match: Optional[SessionRecord] = None
        for record in self._iter_records():
            if record.token != token or record.is_expired(now):
                continue
            if match is None or record.created > match.created:
                match = record
        return match

    def token_in_use(self, token: str) -> bool:
        """True if a live record holds the token."""
        return self.find_by_token(token) is not None

    def remove(self, session_id: str) -> bool:
        """
        Delete a record. Idempotent.

        Returns:
            True if a file was deleted, False if it was already gone
        """
        try:
            self._path(session_id).unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Session record removed: {session_id}")
        return True

    def list_sessions(self, include_expired: bool = False) -> list[SessionRecord]:
        """List records ordered by creation time."""
        now = self.clock()
        records = [
            r for r in self._iter_records()
            if include_expired or not r.is_expired(now)
        ]
        return sorted(records, key=lambda r: r.created)

    def sweep_expired(self, token: Optional[str] = None) -> int:
        """
        Delete expired records.

        Args:
            token: Only sweep expired records holding this token

        Returns:
            Number of records deleted
        """
        now = self.clock()
        removed = 0
        for record in self._iter_records():
            if token is not None and record.token != token:
                continue
            if record.is_expired(now) and self.remove(record.id):
                removed += 1
        if removed:
            logger.info(f"Swept {removed} expired session record(s)")
        return removed
