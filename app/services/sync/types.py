"""
Value types passed between the listing source, the result provider client,
the identity matcher and the orchestrator.
"""
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SourceEvent:
    """Tournament record as returned by the listing source."""
    external_id: str
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    venue: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


@dataclass
class ListingPage:
    events: List[SourceEvent]
    total_count: int = 0


@dataclass
class Venue:
    name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


@dataclass
class ProviderEvent:
    """Event metadata from the result provider."""
    provider_id: str
    title: str
    start_date: Optional[str] = None  # raw provider value, may carry a time
    end_date: Optional[str] = None
    venue: Venue = field(default_factory=Venue)


@dataclass
class BracketOption:
    bracket_id: str
    weight_class: str
    is_disabled: bool = False


@dataclass
class Participant:
    provider_id: Optional[str]
    name: str
    team: Optional[str] = None
    display_team: Optional[str] = None
    seed: Optional[int] = None
    score: Optional[int] = None
    is_winner: bool = False


@dataclass
class Bout:
    provider_bout_id: str
    state: Optional[str] = None
    match_number: Optional[str] = None
    round_name: Optional[str] = None
    result: Optional[str] = None
    win_type: Optional[str] = None
    placement: Optional[str] = None
    top_participant: Optional[Participant] = None
    bottom_participant: Optional[Participant] = None
    bracket_x: Optional[int] = None
    bracket_y: Optional[int] = None


@dataclass
class Placement:
    place: str
    wrestler_name: str
    team_name: Optional[str] = None
    provider_participant_id: Optional[str] = None


@dataclass
class BracketBouts:
    """Bouts of one division; ``bout_count`` is the provider's count before byes were dropped."""
    weight_class: str
    participant_count: int
    bout_count: int
    bouts: List[Bout] = field(default_factory=list)


@dataclass
class BracketData:
    bracket_id: str
    weight_class: str
    participant_count: int
    bout_count: int
    bouts: List[Bout] = field(default_factory=list)
    placements: List[Placement] = field(default_factory=list)


@dataclass
class FullEventData:
    event: ProviderEvent
    brackets: List[BracketData] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ScanEntry:
    title: str
    start_date: Optional[str]


@dataclass
class MatchResult:
    provider_id: str
    score: int
    match_type: str  # exact, substring, date_words


@dataclass
class BracketSyncResult:
    event_id: str
    status: str
    brackets: int = 0
    bouts: int = 0
    placements: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "synced"


@dataclass
class SyncRunReport:
    """Outcome of one orchestrator run. Mirrors the ``sync_run_logs`` row."""
    job_name: str
    run_id: Optional[str] = None
    status: str = "running"
    scraped: int = 0
    new_candidates: int = 0
    matched: int = 0
    auto_approved: int = 0
    auto_synced: int = 0
    sync_errors: int = 0
    duration_ms: int = 0
    error_message: Optional[str] = None
    matches: Dict[str, str] = field(default_factory=dict)
    log_lines: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data
