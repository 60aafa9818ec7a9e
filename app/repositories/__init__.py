"""
Repository layer for data access.

Usage:
    from app.repositories.sync import CandidateRepository, EventRepository
    from app.core.database import SessionLocal

    db = SessionLocal()
    known = CandidateRepository(db).find_known_external_ids(["tw-1001"])
    db.close()
"""
from app.repositories.base import BaseRepository

__all__ = ["BaseRepository"]
