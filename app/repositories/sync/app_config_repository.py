"""
Key/value settings repository with optimistic versioning.

Each row carries a ``version`` counter. A write names the version it read;
if another writer got there first the write affects no rows and the caller
decides whether to re-read and retry.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import update

from app.core.config import settings
from app.models import AppConfig
from app.repositories.base import BaseRepository
from app.services.sync.exceptions import PersistenceConflictError
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class AppConfigRepository(BaseRepository[AppConfig]):
    """Repository for app_config rows."""

    def __init__(self, db):
        super().__init__(AppConfig, db)

    def get_value(self, key: str) -> Tuple[Optional[str], int]:
        """
        Read a key.

        Returns:
            (value, version); (None, 0) when the key does not exist
        """
        row = self.db.query(AppConfig.value, AppConfig.version).filter(AppConfig.key == key).first()
        if row is None:
            return None, 0
        return row.value, row.version

    def compare_and_set(self, key: str, value: str, expected_version: int) -> bool:
        """
        Write ``value`` only if the row is still at ``expected_version``.

        Version 0 means "the key did not exist"; the insert is then
        conditional on nobody else creating it first.

        Returns:
            True if this call wrote the row
        """
        now = utc_now()
        if expected_version == 0:
            stmt = self.insert_stmt().values(
                key=key, value=value, version=1, updated_at=now
            ).on_conflict_do_nothing(index_elements=["key"])
        else:
            stmt = (
                update(AppConfig)
                .where(AppConfig.key == key, AppConfig.version == expected_version)
                .values(value=value, version=expected_version + 1, updated_at=now)
            )
        written = self.db.execute(stmt).rowcount == 1
        self.db.commit()
        return written

    # ========================================================================
    # Matching state
    # ========================================================================

    def get_matching_state(self) -> Optional[int]:
        """Last provider event id the identity scan should center on."""
        value, _ = self.get_value(settings.MATCHING_STATE_KEY)
        try:
            return int(value) if value else None
        except ValueError:
            logger.warning(f"Ignoring non-numeric matching state {value!r}")
            return None

    def advance_matching_state(self, provider_id: int) -> int:
        """
        Move the matching state forward to ``provider_id`` if it is higher.

        Retries once on a version conflict, re-reading and keeping the
        larger of the two values.

        Returns:
            The stored value after the call

        Raises:
            PersistenceConflictError: Lost the race twice in a row
        """
        key = settings.MATCHING_STATE_KEY

        for attempt in range(2):
            raw, version = self.get_value(key)
            try:
                current = int(raw) if raw else None
            except ValueError:
                current = None

            if current is not None and current >= provider_id:
                return current

            if self.compare_and_set(key, str(provider_id), version):
                logger.info(f"Matching state advanced {current} -> {provider_id}")
                return provider_id

            logger.warning(f"Matching state changed concurrently (attempt {attempt + 1}), re-reading")

        raise PersistenceConflictError(f"Could not update {key} after a concurrent write")
