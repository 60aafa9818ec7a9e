"""Unit tests for ResultsApiService.

Test Strategy:
1. Envelope handling: 404, HTTP errors, notification errors, bad JSON, timeouts
2. Parsing: event info, divisions (sorted, disabled kept), bouts (byes dropped), placements
3. get_full_event_data: batching, failed divisions left out, no active divisions
4. parse_provider_event_id and sequential name lookup

All HTTP traffic goes through httpx.MockTransport.
"""
import asyncio

import httpx
import pytest

from app.services.core.results_api_service import ResultsApiService, parse_provider_event_id
from app.services.sync.exceptions import NotFoundError, ProviderError, RequestTimeoutError

BASE_URL = "https://results.test/api/event-hub"


def envelope(data, notifications=None):
    return {"data": data, "notifications": notifications or []}


def make_service(handler) -> ResultsApiService:
    return ResultsApiService(
        base_url=BASE_URL,
        timeout=1.0,
        batch_size=2,
        batch_delay=0,
        probe_delay=0,
        transport=httpx.MockTransport(handler),
    )


def route(routes):
    """Handler dispatching on the path relative to BASE_URL."""
    prefix = httpx.URL(BASE_URL).path

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(prefix):].lstrip("/")
        response = routes.get(path)
        if response is None:
            return httpx.Response(404)
        if callable(response):
            return response(request)
        return response
    return handler


def info_payload(title="Metro Duals", start="2026-02-14T08:00:00-06:00"):
    return envelope({
        "title": title,
        "startDate": start,
        "endDate": "2026-02-15T18:00:00-06:00",
        "location": {
            "name": "Civic Center",
            "address": {"street": "1 Main St", "city": "Des Moines", "state": "IA", "zip": "50309"},
        },
    })


def divisions_payload(options):
    return envelope({"bracketOptionsContent": {"bracketOptions": options}})


def bout(bout_id, state="completed", x=0):
    return {
        "id": bout_id,
        "state": state,
        "matchNumber": 101,
        "roundName": "Champ. Round 1",
        "result": "Dec 3-1",
        "winType": "DEC",
        "x": x,
        "y": 1,
        "topParticipant": {"id": 7, "name": "Alex Smith", "teamName": "Ames", "seed": "1", "score": 3, "winner": True},
        "bottomParticipant": {"id": 8, "displayName": "Ben Jones", "teamName": "Ankeny", "seed": None, "score": "1"},
    }


def bouts_payload(bouts, weight="106", count=16):
    return envelope({"name": weight, "count": count, "matches": {b["id"]: b for b in bouts}})


class TestRequestErrors:
    """Envelope and transport error mapping."""

    # Status and Payload Errors
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_404_raises_not_found(self):
        """Should raise NotFoundError for HTTP 404."""
        service = make_service(route({}))
        with pytest.raises(NotFoundError):
            await service.get_event_info("1")
        await service.close()

    @pytest.mark.asyncio
    async def test_server_error_raises_provider_error(self):
        """Should raise ProviderError carrying the status code."""
        service = make_service(route({"1/information": httpx.Response(503)}))
        with pytest.raises(ProviderError) as exc_info:
            await service.get_event_info("1")
        assert exc_info.value.status_code == 503
        assert exc_info.value.endpoint == "information"

    @pytest.mark.asyncio
    async def test_error_notification_without_data(self):
        """Should raise ProviderError when the envelope reports an error and has no data."""
        payload = envelope(None, [{"type": "error", "message": "Event is private"}])
        service = make_service(route({"1/information": httpx.Response(200, json=payload)}))
        with pytest.raises(ProviderError, match="Event is private"):
            await service.get_event_info("1")

    @pytest.mark.asyncio
    async def test_error_notification_with_data_is_ignored(self):
        """Should return the data when an error notification accompanies it."""
        payload = info_payload()
        payload["notifications"] = [{"type": "error", "message": "partial"}]
        service = make_service(route({"1/information": httpx.Response(200, json=payload)}))

        event = await service.get_event_info("1")

        assert event.title == "Metro Duals"

    @pytest.mark.asyncio
    async def test_invalid_json_raises_provider_error(self):
        """Should raise ProviderError for an unreadable body."""
        service = make_service(route({"1/information": httpx.Response(200, content=b"<html>")}))
        with pytest.raises(ProviderError):
            await service.get_event_info("1")

    @pytest.mark.asyncio
    async def test_timeout_raises_request_timeout(self):
        """Should map httpx timeouts to RequestTimeoutError."""
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        service = make_service(route({"1/information": slow}))
        with pytest.raises(RequestTimeoutError):
            await service.get_event_info("1")

    @pytest.mark.asyncio
    async def test_missing_data_raises_not_found(self):
        """Should raise NotFoundError when information has no data."""
        service = make_service(route({"1/information": httpx.Response(200, json=envelope(None))}))
        with pytest.raises(NotFoundError):
            await service.get_event_info("1")


class TestParsing:
    """Parsing of individual endpoints."""

    # Event Info
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_event_info(self):
        """Should parse title, raw dates and venue with a default country."""
        service = make_service(route({"14468801/information": httpx.Response(200, json=info_payload())}))

        event = await service.get_event_info("14468801")

        assert event.provider_id == "14468801"
        assert event.title == "Metro Duals"
        assert event.start_date == "2026-02-14T08:00:00-06:00"
        assert event.venue.name == "Civic Center"
        assert event.venue.city == "Des Moines"
        assert event.venue.country == "US"

    # Divisions
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_divisions_sorted_numerically_with_disabled_kept(self):
        """Should flatten groups, sort numeric weights first and keep disabled options."""
        options = {
            "Varsity": [
                {"bracketId": 3, "text": "285"},
                {"bracketId": 1, "text": "106"},
            ],
            "Other": [
                {"bracketId": 9, "text": "Open"},
                {"bracketId": 2, "text": "113 lbs", "isDisabled": True},
                {"text": "no id"},
            ],
        }
        service = make_service(route({"5/brackets/divisions": httpx.Response(200, json=divisions_payload(options))}))

        divisions = await service.get_bracket_divisions("5")

        assert [d.weight_class for d in divisions] == ["106", "113 lbs", "285", "Open"]
        assert [d.bracket_id for d in divisions] == ["1", "2", "3", "9"]
        assert divisions[1].is_disabled is True

    @pytest.mark.asyncio
    async def test_divisions_missing_structure(self):
        """Should raise NotFoundError when bracket options are absent."""
        service = make_service(route({"5/brackets/divisions": httpx.Response(200, json=envelope({}))}))
        with pytest.raises(NotFoundError):
            await service.get_bracket_divisions("5")

    # Bouts and Placements
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_bouts_drop_byes_but_count_them(self):
        """Should drop bye bouts while reporting the provider's full count."""
        bouts = [bout(f"m{i}", state="bye" if i == 0 else "completed", x=i) for i in range(15)]
        service = make_service(route({"5/brackets/1": httpx.Response(200, json=bouts_payload(bouts))}))

        result = await service.get_bracket_bouts("5", "1")

        assert result.weight_class == "106"
        assert result.participant_count == 16
        assert result.bout_count == 15
        assert len(result.bouts) == 14
        assert all(b.state != "bye" for b in result.bouts)

    @pytest.mark.asyncio
    async def test_bout_participants(self):
        """Should parse participants, falling back to displayName."""
        service = make_service(route({"5/brackets/1": httpx.Response(200, json=bouts_payload([bout("m1")]))}))

        result = await service.get_bracket_bouts("5", "1")
        parsed = result.bouts[0]

        assert parsed.provider_bout_id == "m1"
        assert parsed.match_number == "101"
        assert parsed.top_participant.name == "Alex Smith"
        assert parsed.top_participant.seed == 1
        assert parsed.top_participant.is_winner is True
        assert parsed.bottom_participant.name == "Ben Jones"
        assert parsed.bottom_participant.score == 1
        assert parsed.bottom_participant.seed is None

    @pytest.mark.asyncio
    async def test_bouts_without_matches(self):
        """Should return an empty bracket when matches are missing."""
        payload = envelope({"name": "106", "count": 0})
        service = make_service(route({"5/brackets/1": httpx.Response(200, json=payload)}))

        result = await service.get_bracket_bouts("5", "1")

        assert result.bouts == []
        assert result.bout_count == 0

    @pytest.mark.asyncio
    async def test_placements(self):
        """Should keep the provider's place text and skip entries without a place."""
        payload = envelope([
            {"place": "1st", "name": "Alex Smith", "teamName": "Ames", "participantId": 7},
            {"place": 2, "name": "Ben Jones"},
            {"place": "DNP", "name": "Chris Lee"},
            {"place": "", "name": "Dan Ortiz"},
        ])
        service = make_service(route({"5/brackets/placements/1": httpx.Response(200, json=payload)}))

        placements = await service.get_bracket_placements("5", "1")

        assert [(p.place, p.wrestler_name) for p in placements] == [
            ("1st", "Alex Smith"),
            ("2", "Ben Jones"),
            ("DNP", "Chris Lee"),
        ]
        assert placements[0].provider_participant_id == "7"
        assert placements[1].team_name is None

    @pytest.mark.asyncio
    async def test_placements_non_list(self):
        """Should return [] when placements are not a list."""
        service = make_service(route({"5/brackets/placements/1": httpx.Response(200, json=envelope({}))}))
        assert await service.get_bracket_placements("5", "1") == []


class TestFullEventData:
    """Composite fetch of an event's bracket tree."""

    @pytest.mark.asyncio
    async def test_fetches_active_divisions_and_skips_failures(self):
        """Should omit failed and disabled divisions and record the failure."""
        options = {"All": [
            {"bracketId": 1, "text": "106"},
            {"bracketId": 2, "text": "113"},
            {"bracketId": 3, "text": "120"},
            {"bracketId": 4, "text": "126", "isDisabled": True},
        ]}
        routes = {
            "5/information": httpx.Response(200, json=info_payload()),
            "5/brackets/divisions": httpx.Response(200, json=divisions_payload(options)),
            "5/brackets/1": httpx.Response(200, json=bouts_payload([bout("a1"), bout("a2")])),
            "5/brackets/placements/1": httpx.Response(200, json=envelope([{"place": 1, "name": "Alex Smith"}])),
            "5/brackets/2": httpx.Response(500),
            "5/brackets/placements/2": httpx.Response(200, json=envelope([])),
            "5/brackets/3": httpx.Response(200, json=bouts_payload([bout("c1")], weight="120")),
            "5/brackets/placements/3": httpx.Response(200, json=envelope([])),
        }
        requested = []

        def handler(request):
            requested.append(request.url.path)
            return route(routes)(request)

        service = make_service(handler)

        full = await service.get_full_event_data("5")

        assert full.event.title == "Metro Duals"
        assert [b.bracket_id for b in full.brackets] == ["1", "3"]
        assert full.brackets[0].placements[0].wrestler_name == "Alex Smith"
        assert len(full.errors) == 1
        assert "113" in full.errors[0]
        assert not any(path.endswith("/brackets/4") for path in requested)

    @pytest.mark.asyncio
    async def test_failed_division_settles_before_next_batch(self):
        """Should wait for a failed division's placements before starting the next batch."""
        options = {"All": [{"bracketId": 1, "text": "106"}, {"bracketId": 2, "text": "113"}]}
        timeline = []
        prefix = httpx.URL(BASE_URL).path

        async def handler(request):
            path = request.url.path[len(prefix):].lstrip("/")
            if path == "5/information":
                return httpx.Response(200, json=info_payload())
            if path == "5/brackets/divisions":
                return httpx.Response(200, json=divisions_payload(options))
            if path == "5/brackets/1":
                timeline.append("106-bouts-failed")
                return httpx.Response(500)
            if path == "5/brackets/placements/1":
                await asyncio.sleep(0.2)
                timeline.append("106-placements-done")
                return httpx.Response(200, json=envelope([]))
            if path == "5/brackets/2":
                timeline.append("113-bouts-start")
                return httpx.Response(200, json=bouts_payload([bout("b1")], weight="113"))
            return httpx.Response(200, json=envelope([]))

        service = ResultsApiService(
            base_url=BASE_URL,
            timeout=1.0,
            batch_size=1,
            batch_delay=0,
            probe_delay=0,
            transport=httpx.MockTransport(handler),
        )

        full = await service.get_full_event_data("5")

        assert timeline.index("106-placements-done") < timeline.index("113-bouts-start")
        assert [b.bracket_id for b in full.brackets] == ["2"]
        assert len(full.errors) == 1
        assert "106" in full.errors[0]

    @pytest.mark.asyncio
    async def test_no_active_divisions(self):
        """Should return no brackets and a single error when every division is disabled."""
        options = {"All": [{"bracketId": 1, "text": "106", "isDisabled": True}]}
        service = make_service(route({
            "5/information": httpx.Response(200, json=info_payload()),
            "5/brackets/divisions": httpx.Response(200, json=divisions_payload(options)),
        }))

        full = await service.get_full_event_data("5")

        assert full.brackets == []
        assert full.errors == ["No active bracket divisions found"]

    @pytest.mark.asyncio
    async def test_every_division_failing(self):
        """Should return an empty bracket list with one error per division."""
        options = {"All": [{"bracketId": 1, "text": "106"}, {"bracketId": 2, "text": "113"}, {"bracketId": 3, "text": "120"}]}
        service = make_service(route({
            "5/information": httpx.Response(200, json=info_payload()),
            "5/brackets/divisions": httpx.Response(200, json=divisions_payload(options)),
        }))

        full = await service.get_full_event_data("5")

        assert full.brackets == []
        assert len(full.errors) == 3

    @pytest.mark.asyncio
    async def test_event_info_failure_propagates(self):
        """Should raise when event info cannot be fetched."""
        service = make_service(route({}))
        with pytest.raises(NotFoundError):
            await service.get_full_event_data("5")


class TestLookups:
    """Identifier helpers."""

    def test_parse_provider_event_id(self):
        """Should extract the numeric id from an event page URL."""
        assert parse_provider_event_id("https://www.flowrestling.org/nextgen/events/14468801/brackets") == "14468801"
        assert parse_provider_event_id("https://www.flowrestling.org/nextgen/events/14468801") == "14468801"
        assert parse_provider_event_id("https://example.com/events/123") is None
        assert parse_provider_event_id("") is None

    @pytest.mark.asyncio
    async def test_find_event_id_by_name(self):
        """Should probe sequentially and return the first substring match."""
        service = make_service(route({
            "11/information": httpx.Response(200, json=info_payload(title="River Valley Open")),
            "12/information": httpx.Response(503),
            "13/information": httpx.Response(200, json=info_payload(title="2026 Metro Duals")),
        }))

        assert await service.find_event_id_by_name("Metro Duals", 10, 15) == "13"

    @pytest.mark.asyncio
    async def test_find_event_id_by_name_no_match(self):
        """Should return None when nothing in range matches."""
        service = make_service(route({}))
        assert await service.find_event_id_by_name("Metro Duals", 1, 3) is None
