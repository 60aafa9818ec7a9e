from app.repositories.sync.app_config_repository import AppConfigRepository
from app.repositories.sync.candidate_repository import CandidateRepository
from app.repositories.sync.event_repository import EventRepository
from app.repositories.sync.sync_run_repository import SyncRunRepository

__all__ = [
    "AppConfigRepository",
    "CandidateRepository",
    "EventRepository",
    "SyncRunRepository",
]
