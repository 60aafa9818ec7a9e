"""Event matcher for linking listing-source events to result provider ids.

The provider exposes no cross-reference key and no search endpoint. Its ids
are assigned roughly in chronological order, so the matcher scans a window
of ids around a recently seen one (the matching state) and scores every
event it finds against the listing names.

Matching priority (see utils/confidence_scorer.py):
1. Exact normalized name (100)
2. Substring either way (90)
3. Same calendar date + at least 3 shared words (50 + 5 per word)

Only matches scoring >= 50 are returned.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from app.core.config import settings
from app.core.metrics import identity_scan_probes_total, identity_matches_total
from app.services.core.results_api_service import ResultsApiService
from app.services.sync.types import MatchResult, ScanEntry
from app.services.sync.utils.confidence_scorer import MATCH_EXACT, is_acceptable, score_event_match
from app.services.sync.utils.outcomes import Fatal, Ok, Skipped, capture

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Events found in one scan window, keyed by provider id in ascending order."""
    center: int
    cache: Dict[int, ScanEntry] = field(default_factory=dict)
    probed: int = 0
    skipped: int = 0
    fatal: int = 0


class EventMatcher:
    """
    Match listing events to provider event ids.

    Stateless between calls: the scan cache lives only for one batch.
    """

    def __init__(
        self,
        results_service: ResultsApiService,
        radius: Optional[int] = None,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ):
        """
        Initialize the event matcher.

        Args:
            results_service: Provider client used for probes
            radius: Ids scanned on each side of the center
            chunk_size: Ids probed concurrently per chunk
            chunk_delay: Seconds to sleep between chunks
        """
        self.results_service = results_service
        self.radius = radius if radius is not None else settings.MATCH_SCAN_RADIUS
        self.chunk_size = chunk_size or settings.MATCH_CHUNK_SIZE
        self.chunk_delay = chunk_delay if chunk_delay is not None else settings.MATCH_CHUNK_DELAY

    async def scan_window(self, center: int) -> ScanResult:
        """
        Probe every id in ``[center - radius, center + radius]``.

        Ids are probed ``chunk_size`` at a time; each chunk is awaited in full
        before the next starts. Only successful probes are cached. Missing
        ids, timeouts and provider errors are expected and counted as skips;
        unexpected exceptions are counted as fatal. Neither aborts the scan.
        """
        start, end = center - self.radius, center + self.radius
        result = ScanResult(center=center)

        for chunk_start in range(start, end + 1, self.chunk_size):
            ids = list(range(chunk_start, min(chunk_start + self.chunk_size, end + 1)))
            outcomes = await asyncio.gather(
                *(capture(self.results_service.get_event_info(str(i))) for i in ids)
            )

            for provider_id, outcome in zip(ids, outcomes):
                result.probed += 1
                identity_scan_probes_total.labels(outcome=outcome.tag).inc()
                if isinstance(outcome, Ok):
                    result.cache[provider_id] = ScanEntry(
                        title=outcome.value.title,
                        start_date=outcome.value.start_date,
                    )
                elif isinstance(outcome, Skipped):
                    result.skipped += 1
                elif isinstance(outcome, Fatal):
                    result.fatal += 1
                    logger.warning(f"Probe {provider_id} failed unexpectedly: {outcome.reason}")

            if chunk_start + self.chunk_size <= end:
                await asyncio.sleep(self.chunk_delay)

        logger.info(
            f"Scanned ids {start}-{end}: {len(result.cache)} found, "
            f"{result.skipped} skipped, {result.fatal} failed"
        )
        return result

    def find_best_match(
        self,
        name: str,
        start_date: Any,
        cache: Dict[int, ScanEntry],
    ) -> Optional[MatchResult]:
        """
        Score one target against every cached provider event.

        An exact match ends the search. Otherwise the highest score wins and
        the earliest cached id keeps ties.

        Returns:
            MatchResult if the best score is acceptable, else None
        """
        best: Optional[MatchResult] = None

        for provider_id, entry in cache.items():
            score, match_type = score_event_match(name, start_date, entry.title, entry.start_date)
            if not match_type:
                continue
            if best is None or best.score < score:
                best = MatchResult(provider_id=str(provider_id), score=score, match_type=match_type)
            if match_type == MATCH_EXACT:
                break

        if best and is_acceptable(best.score):
            return best
        return None

    def score_targets(self, targets: Iterable[Any], cache: Dict[int, ScanEntry]) -> Dict[str, MatchResult]:
        """
        Best match for each target (objects with ``name`` and ``start_date``).

        Targets without an acceptable match are absent from the result.
        """
        matches: Dict[str, MatchResult] = {}
        for target in targets:
            match = self.find_best_match(target.name, target.start_date, cache)
            if match:
                matches[target.name] = match
                identity_matches_total.labels(match_type=match.match_type).inc()
                logger.info(
                    f"Matched '{target.name}' -> {match.provider_id} "
                    f"(score {match.score}, {match.match_type})"
                )
        return matches

    async def match_batch(self, targets: List[Any], hint_id: Optional[int] = None) -> Dict[str, str]:
        """
        Match many listing events in one scan.

        Args:
            targets: Objects with ``name`` and ``start_date`` attributes
            hint_id: Scan center (matching state); default center when None

        Returns:
            Mapping of event name to provider id (as a string)
        """
        if not targets:
            return {}

        center = hint_id or settings.MATCH_DEFAULT_CENTER_ID
        scan = await self.scan_window(center)
        matches = self.score_targets(targets, scan.cache)

        logger.info(f"Matched {len(matches)}/{len(targets)} events around id {center}")
        return {name: match.provider_id for name, match in matches.items()}

    async def find_single(self, name: str, hint_id: Optional[int] = None) -> Optional[str]:
        """
        Sequential lookup for one event name around ``hint_id``.

        Slower than match_batch and limited to exact and substring matches;
        meant for ad hoc lookups.
        """
        center = hint_id or settings.MATCH_DEFAULT_CENTER_ID
        return await self.results_service.find_event_id_by_name(
            name, center - self.radius, center + self.radius
        )
