"""
Result provider client for event brackets, bouts and placements.

The provider is a public JSON API keyed by opaque numeric event ids. Every
response is an envelope ``{"data": ..., "notifications": [...]}``; an
``error`` notification without data means the request failed.

Endpoints used (relative to RESULTS_API_BASE_URL):
- /{event_id}/information                  event metadata
- /{event_id}/brackets/divisions            weight-class bracket options
- /{event_id}/brackets/{bracket_id}         bouts of one bracket
- /{event_id}/brackets/placements/{id}      final placings

There is no published rate limit. Composite fetches throttle themselves
with a flat delay between concurrent batches.
"""
import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.metrics import results_api_requests_total, results_api_request_duration_seconds
from app.services.sync.exceptions import NotFoundError, ProviderError, RequestTimeoutError
from app.services.sync.types import (
    BracketBouts,
    BracketData,
    BracketOption,
    Bout,
    FullEventData,
    Participant,
    Placement,
    ProviderEvent,
    Venue,
)
from app.services.sync.utils.name_normalizer import normalize_event_name

logger = logging.getLogger(__name__)

EVENT_URL_PATTERN = re.compile(r"nextgen/events/(\d+)")
_LEADING_INT = re.compile(r"^\s*(\d+)")


def parse_provider_event_id(url: str) -> Optional[str]:
    """
    Extract the numeric event id from a provider event page URL.

    Examples:
        >>> parse_provider_event_id("https://www.flowrestling.org/nextgen/events/14468801/brackets")
        '14468801'
        >>> parse_provider_event_id("https://example.com/events") is None
        True
    """
    if not url:
        return None
    match = EVENT_URL_PATTERN.search(url)
    return match.group(1) if match else None


def _leading_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _division_sort_key(option: BracketOption) -> Tuple[int, int, str]:
    """Numeric weight classes ascending, then non-numeric ones lexicographically."""
    weight = _leading_int(option.weight_class)
    if weight is None:
        return (1, 0, option.weight_class)
    return (0, weight, option.weight_class)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class ResultsApiService:
    """
    Async client for the result provider.

    Requests carry an individual deadline (RESULTS_API_TIMEOUT). Failures are
    translated into NotFoundError, RequestTimeoutError or ProviderError;
    nothing is retried here.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        probe_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the result provider client.

        Args:
            base_url: API root (default: RESULTS_API_BASE_URL)
            timeout: Per-request deadline in seconds
            batch_size: Divisions fetched concurrently by get_full_event_data
            batch_delay: Seconds to sleep between division batches
            probe_delay: Seconds to sleep between single-event probes
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or settings.RESULTS_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.RESULTS_API_TIMEOUT
        self.batch_size = batch_size or settings.RESULTS_BATCH_SIZE
        self.batch_delay = batch_delay if batch_delay is not None else settings.RESULTS_BATCH_DELAY
        self.probe_delay = probe_delay if probe_delay is not None else settings.RESULTS_PROBE_DELAY
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": settings.RESULTS_API_USER_AGENT,
        }

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        GET ``path`` and return the decoded envelope.

        Args:
            endpoint: Short endpoint label for metrics and errors
            path: Path relative to the base URL
            params: Query parameters

        Raises:
            NotFoundError: HTTP 404
            RequestTimeoutError: No response within the deadline
            ProviderError: Other non-2xx status, transport failure, bad JSON,
                or an error notification without data
        """
        client = await self._get_client()
        url = f"{self.base_url}/{path}"
        started = time.perf_counter()
        outcome = "error"

        try:
            response = await client.get(url, params=params)

            if response.status_code == 404:
                outcome = "not_found"
                raise NotFoundError(f"{endpoint} not found: {path}", endpoint)
            if response.status_code >= 400:
                raise ProviderError(
                    f"{endpoint} returned HTTP {response.status_code} for {path}",
                    endpoint,
                    status_code=response.status_code,
                )

            try:
                envelope = response.json()
            except ValueError as e:
                raise ProviderError(f"{endpoint} returned invalid JSON for {path}: {e}", endpoint)

            if not isinstance(envelope, dict):
                raise ProviderError(f"{endpoint} returned unexpected payload for {path}", endpoint)

            notifications = envelope.get("notifications") or []
            error_notice = next(
                (n for n in notifications if isinstance(n, dict) and n.get("type") == "error"),
                None,
            )
            if error_notice and not envelope.get("data"):
                raise ProviderError(
                    f"{endpoint} notification error: {error_notice.get('message', 'unknown')}",
                    endpoint,
                )

            outcome = "success"
            return envelope

        except httpx.TimeoutException:
            outcome = "timeout"
            raise RequestTimeoutError(f"Timeout after {self.timeout}s fetching {endpoint} for {path}", endpoint)
        except httpx.HTTPError as e:
            raise ProviderError(f"{endpoint} request failed for {path}: {e}", endpoint)
        finally:
            results_api_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()
            results_api_request_duration_seconds.labels(endpoint=endpoint).observe(time.perf_counter() - started)

    # Event Methods

    async def get_event_info(self, provider_id: str) -> ProviderEvent:
        """
        Fetch event metadata.

        Args:
            provider_id: Numeric provider event id

        Returns:
            ProviderEvent with raw start/end dates and venue

        Raises:
            NotFoundError: No data payload for this id
        """
        envelope = await self._request(
            "information",
            f"{provider_id}/information",
            params={"filter": "null", "search": "null"},
        )
        data = envelope.get("data")
        if not data or not isinstance(data, dict):
            raise NotFoundError(f"No data returned for provider event {provider_id}", "information")

        location = data.get("location") or {}
        address = location.get("address") or {}

        return ProviderEvent(
            provider_id=str(provider_id),
            title=data.get("title") or "",
            start_date=data.get("startDate") or None,
            end_date=data.get("endDate") or None,
            venue=Venue(
                name=location.get("name") or None,
                street=address.get("street") or None,
                city=address.get("city") or None,
                state=address.get("state") or None,
                zip=address.get("zip") or None,
                country=address.get("country") or "US",
            ),
        )

    async def get_bracket_divisions(self, provider_id: str) -> List[BracketOption]:
        """
        Fetch all bracket divisions, flattened and sorted by weight class.

        Disabled divisions are kept (``is_disabled=True``); filtering is the
        caller's decision.

        Raises:
            NotFoundError: The event has no bracket options structure
        """
        envelope = await self._request("divisions", f"{provider_id}/brackets/divisions")
        data = envelope.get("data") or {}
        content = data.get("bracketOptionsContent") if isinstance(data, dict) else None
        bracket_options = (content or {}).get("bracketOptions")

        if not isinstance(bracket_options, dict):
            raise NotFoundError(f"No bracket divisions found for provider event {provider_id}", "divisions")

        options: List[BracketOption] = []
        for group in bracket_options.values():
            if not isinstance(group, list):
                continue
            for opt in group:
                if not isinstance(opt, dict) or opt.get("bracketId") is None:
                    continue
                options.append(BracketOption(
                    bracket_id=str(opt["bracketId"]),
                    weight_class=str(opt.get("text") or ""),
                    is_disabled=bool(opt.get("isDisabled", False)),
                ))

        return sorted(options, key=_division_sort_key)

    async def get_bracket_bouts(self, provider_id: str, bracket_id: str) -> BracketBouts:
        """
        Fetch the bouts of one bracket. Bouts in the ``bye`` state are dropped.

        Returns:
            BracketBouts; ``bout_count`` is the number of bouts the provider
            returned before byes were removed
        """
        envelope = await self._request(
            "bouts",
            f"{provider_id}/brackets/{bracket_id}",
            params={"filter": "null", "search": "null", "tab": "null", "refresh": "false"},
        )
        data = envelope.get("data")
        if not data or not isinstance(data, dict):
            raise NotFoundError(f"No bracket data for bracket {bracket_id} in event {provider_id}", "bouts")

        weight_class = str(data.get("name") or "Unknown")
        participant_count = _leading_int(data.get("count")) or 0
        matches = data.get("matches")

        if not isinstance(matches, dict):
            return BracketBouts(weight_class=weight_class, participant_count=participant_count, bout_count=0)

        bouts = [self._parse_bout(key, raw) for key, raw in matches.items() if isinstance(raw, dict)]

        return BracketBouts(
            weight_class=weight_class,
            participant_count=participant_count,
            bout_count=len(bouts),
            bouts=[b for b in bouts if b.state != "bye"],
        )

    async def get_bracket_placements(self, provider_id: str, bracket_id: str) -> List[Placement]:
        """Fetch final placings of one bracket. A non-list payload yields []."""
        envelope = await self._request("placements", f"{provider_id}/brackets/placements/{bracket_id}")
        data = envelope.get("data")
        if not isinstance(data, list):
            return []

        placements = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            place = _str_or_none(raw.get("place"))
            if place is None:
                continue
            placements.append(Placement(
                place=place,
                wrestler_name=raw.get("name") or "",
                team_name=raw.get("teamName") or None,
                provider_participant_id=_str_or_none(raw.get("participantId")),
            ))
        return placements

    async def get_full_event_data(self, provider_id: str) -> FullEventData:
        """
        Fetch event info, divisions and every active bracket's bouts and placements.

        Event info and divisions are fetched once; their failure raises.
        Active divisions are processed in batches of ``batch_size``: each
        division fetches bouts and placements concurrently, the whole batch
        is awaited before moving on, and ``batch_delay`` separates batches.
        A division that fails in any way is left out and its error recorded.

        Returns:
            FullEventData(event, brackets, errors)
        """
        event = await self.get_event_info(provider_id)
        divisions = await self.get_bracket_divisions(provider_id)
        active = [d for d in divisions if not d.is_disabled]

        if not active:
            return FullEventData(event=event, brackets=[], errors=["No active bracket divisions found"])

        brackets: List[BracketData] = []
        errors: List[str] = []

        for start in range(0, len(active), self.batch_size):
            batch = active[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._fetch_division(provider_id, division) for division in batch),
                return_exceptions=True,
            )

            for division, result in zip(batch, results):
                if isinstance(result, BaseException):
                    errors.append(f"Failed to fetch bracket {division.weight_class}: {result}")
                    logger.warning(f"Division {division.weight_class} ({division.bracket_id}) skipped for event {provider_id}: {result}")
                else:
                    brackets.append(result)

            if start + self.batch_size < len(active):
                await asyncio.sleep(self.batch_delay)

        logger.info(f"Fetched {len(brackets)}/{len(active)} brackets for provider event {provider_id}")
        return FullEventData(event=event, brackets=brackets, errors=errors)

    async def _fetch_division(self, provider_id: str, division: BracketOption) -> BracketData:
        # Both requests must settle before the division reports back
        bouts_result, placements = await asyncio.gather(
            self.get_bracket_bouts(provider_id, division.bracket_id),
            self.get_bracket_placements(provider_id, division.bracket_id),
            return_exceptions=True,
        )
        for result in (bouts_result, placements):
            if isinstance(result, BaseException):
                raise result
        return BracketData(
            bracket_id=division.bracket_id,
            weight_class=division.weight_class or bouts_result.weight_class,
            participant_count=bouts_result.participant_count,
            bout_count=bouts_result.bout_count,
            bouts=bouts_result.bouts,
            placements=placements,
        )

    async def find_event_id_by_name(self, name: str, start_id: int, end_id: int) -> Optional[str]:
        """
        Probe ids one at a time for an event whose title matches ``name``.

        Sequential with ``probe_delay`` between requests; for ad hoc lookups,
        not batch discovery. Exact and substring matches (after
        normalization) both count.

        Returns:
            The first matching provider id, or None
        """
        target = normalize_event_name(name)
        if not target:
            return None

        for candidate_id in range(start_id, end_id + 1):
            try:
                info = await self.get_event_info(str(candidate_id))
            except (NotFoundError, RequestTimeoutError, ProviderError) as e:
                logger.debug(f"Probe {candidate_id} skipped: {e}")
            else:
                title = normalize_event_name(info.title)
                if title and (title == target or target in title or title in target):
                    logger.info(f"Matched '{name}' to provider event {candidate_id}")
                    return str(candidate_id)

            await asyncio.sleep(self.probe_delay)

        return None

    @staticmethod
    def _parse_participant(raw: Any) -> Optional[Participant]:
        if not isinstance(raw, dict):
            return None
        return Participant(
            provider_id=_str_or_none(raw.get("id")),
            name=raw.get("name") or raw.get("displayName") or "",
            team=raw.get("teamName") or raw.get("team") or None,
            display_team=raw.get("displayTeamName") or None,
            seed=_leading_int(raw.get("seed")),
            score=_leading_int(raw.get("score")),
            is_winner=bool(raw.get("winner", False)),
        )

    def _parse_bout(self, key: str, raw: Dict[str, Any]) -> Bout:
        return Bout(
            provider_bout_id=str(raw.get("id") or key),
            state=raw.get("state") or "unknown",
            match_number=_str_or_none(raw.get("matchNumber")),
            round_name=raw.get("roundName") or None,
            result=raw.get("result") or None,
            win_type=raw.get("winType") or None,
            placement=_str_or_none(raw.get("placement")),
            top_participant=self._parse_participant(raw.get("topParticipant")),
            bottom_participant=self._parse_participant(raw.get("bottomParticipant")),
            bracket_x=_leading_int(raw.get("x")) or 0,
            bracket_y=_leading_int(raw.get("y")) or 0,
        )


# Singleton instance
_results_service: Optional[ResultsApiService] = None


def get_results_service() -> ResultsApiService:
    """Get or create ResultsApiService singleton."""
    global _results_service
    if _results_service is None:
        _results_service = ResultsApiService()
    return _results_service
