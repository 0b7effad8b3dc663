"""Tests unitarios para el cliente de rastreo UPS."""

import asyncio
from datetime import UTC, datetime

import aiohttp
import pytest

from packtrack.db.ups_client import format_delivery_date, parse_tracking_response
from packtrack.domain.value_objects import TrackingStatusKind
from packtrack.utils.error_handler import AuthError, TrackingFetchError
from tests.fakes import FakeSession, make_settings, make_ups_client, ups_handler, ups_payload

OAUTH = "/security/v1/oauth/token"
DETAILS = "/api/track/v1/details/"


class TestParsing:
    """Tests para el parseo de la respuesta de detalle."""

    def test_parse_full_response(self):
        fetched = datetime(2024, 1, 3, tzinfo=UTC)

        record = parse_tracking_response(ups_payload("Delivered", "Austin", "TX", "20240104"), "https://t", fetched)

        assert record.kind is TrackingStatusKind.LIVE
        assert record.status == "Delivered"
        assert record.location == "Austin, TX"
        assert record.expected_delivery == "01/04/2024"
        assert record.last_updated == fetched
        assert record.delivered is True

    def test_partial_location_and_missing_date(self):
        record = parse_tracking_response(
            ups_payload("In Transit", city="Memphis", state=None, delivery_date=None), "", datetime.now(UTC)
        )

        assert record.location == "Memphis"
        assert record.expected_delivery == "--"

    def test_falls_back_to_current_status(self):
        payload = {
            "trackResponse": {
                "shipment": [{"package": [{"activity": [], "currentStatus": {"description": "Label Created"}}]}]
            }
        }

        record = parse_tracking_response(payload, "", datetime.now(UTC))

        assert record.status == "Label Created"
        assert record.location == ""

    def test_no_status_at_all_is_unknown(self):
        payload = {"trackResponse": {"shipment": [{"package": [{"activity": [{}]}]}]}}

        record = parse_tracking_response(payload, "", datetime.now(UTC))

        assert record.kind is TrackingStatusKind.UNKNOWN

    def test_missing_package_raises(self):
        payload = {"trackResponse": {"shipment": [{"warnings": [{"message": "Tracking Information Not Found"}]}]}}

        with pytest.raises(TrackingFetchError, match="Not Found"):
            parse_tracking_response(payload, "", datetime.now(UTC))

    @pytest.mark.parametrize(
        "package",
        [
            {"activity": [{"status": "Delivered"}]},
            {"activity": [{"status": {"description": "In Transit"}, "location": "Memphis"}]},
            {"activity": [{"location": {"address": "Memphis, TN"}}], "currentStatus": "Delivered"},
            {"activity": ["junk"], "deliveryDate": [{"date": 20240105}]},
            {"activity": "junk", "deliveryDate": "20240105"},
        ],
    )
    def test_wrongly_typed_nested_fields_are_ignored(self, package):
        """Valores anidados con tipo incorrecto se tratan como ausentes."""
        payload = {"trackResponse": {"shipment": [{"package": [package]}]}}

        record = parse_tracking_response(payload, "", datetime.now(UTC))

        assert record.location == ""
        assert record.expected_delivery == "--"

    def test_wrong_location_type_keeps_status(self):
        payload = {
            "trackResponse": {
                "shipment": [{"package": [{"activity": [{"status": {"description": "In Transit"}, "location": "x"}]}]}]
            }
        }

        record = parse_tracking_response(payload, "", datetime.now(UTC))

        assert record.status == "In Transit"

    @pytest.mark.parametrize("payload", [{"trackResponse": "down"}, {"trackResponse": {"shipment": "x"}}, []])
    def test_wrongly_typed_envelope_raises_fetch_error(self, payload):
        with pytest.raises(TrackingFetchError):
            parse_tracking_response(payload, "", datetime.now(UTC))

    @pytest.mark.parametrize(
        "raw,expected",
        [("20240105", "01/05/2024"), (None, "--"), ("", "--"), ("2024-01-05", "2024-01-05")],
    )
    def test_format_delivery_date(self, raw, expected):
        assert format_delivery_date(raw) == expected


class TestTrack:
    """Tests para UPSTrackingClient.track."""

    @pytest.mark.asyncio
    async def test_non_prefix_number_makes_no_call(self, settings, clock):
        """Un número sin prefijo UPS devuelve 'Label Created' sin red."""
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        record = await client.track("9400111899223100000000")

        assert record.kind is TrackingStatusKind.LABEL_CREATED
        assert record.status == "Label Created"
        assert record.expected_delivery == "Pending"
        assert record.tracking_url == "https://www.ups.com/track?tracknum=9400111899223100000000"
        assert session.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("number", [None, "", "   "])
    async def test_missing_number_is_no_tracking(self, settings, clock, number):
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        record = await client.track(number)

        assert record.kind is TrackingStatusKind.NO_TRACKING
        assert record.status == "No Tracking"
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_live_lookup_sends_headers(self, settings, clock):
        session = FakeSession(ups_handler({"1Z999": "Delivered"}))
        client = make_ups_client(settings, session, clock)

        record = await client.track("1z999")

        assert record.status == "Delivered"
        assert record.delivered is True
        assert record.last_updated == datetime.fromtimestamp(clock.now, UTC)

        oauth_calls = session.calls_to(OAUTH)
        assert len(oauth_calls) == 1
        assert oauth_calls[0][2]["data"] == {"grant_type": "client_credentials"}

        _, url, kwargs = session.calls_to(DETAILS)[0]
        assert url.endswith("/1z999")
        assert kwargs["headers"]["Authorization"] == "Bearer token-1"
        assert kwargs["headers"]["transactionSrc"] == "PackTrack"
        assert len(kwargs["headers"]["transId"]) == 32

    @pytest.mark.asyncio
    async def test_transaction_id_is_fresh_per_request(self, settings, clock):
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        await client.track("1Z1")
        await client.track("1Z2")

        trans_ids = {call[2]["headers"]["transId"] for call in session.calls_to(DETAILS)}
        assert len(trans_ids) == 2

    @pytest.mark.asyncio
    async def test_result_cached_until_ttl(self, settings, clock):
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        await client.track("1Z999")
        clock.advance(settings.TRACKING_CACHE_TTL_SECONDS - 1)
        await client.track("1Z999")
        assert len(session.calls_to(DETAILS)) == 1

        clock.advance(1)
        await client.track("1Z999")
        assert len(session.calls_to(DETAILS)) == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self, settings, clock):
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        await client.track("1Z999")
        await client.track("1Z999", force=True)

        assert len(session.calls_to(DETAILS)) == 2

    @pytest.mark.asyncio
    async def test_token_reused_across_lookups(self, settings, clock):
        """El token se reutiliza hasta el margen de seguridad."""
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        await client.track("1Z1")
        await client.track("1Z2")
        assert len(session.calls_to(OAUTH)) == 1

        # expires_in=14399, margin=600
        clock.advance(14399 - 600)
        await client.track("1Z3")
        assert len(session.calls_to(OAUTH)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_token_exchange(self, settings, clock):
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        await asyncio.gather(*(client.track(f"1Z{i}") for i in range(5)))

        assert len(session.calls_to(OAUTH)) == 1
        assert len(session.calls_to(DETAILS)) == 5

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_retries_once(self, settings, clock):
        tokens = iter(["stale", "fresh"])
        seen = []

        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": next(tokens), "expires_in": 3600}
            seen.append(kwargs["headers"]["Authorization"])
            if kwargs["headers"]["Authorization"] == "Bearer stale":
                return 401, "expired"
            return 200, ups_payload("In Transit")

        session = FakeSession(handler)
        client = make_ups_client(settings, session, clock)

        record = await client.track("1Z999")

        assert record.status == "In Transit"
        assert seen == ["Bearer stale", "Bearer fresh"]

    @pytest.mark.asyncio
    async def test_repeated_401_is_auth_error_sentinel(self, settings, clock):
        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": "tok", "expires_in": 3600}
            return 401, "denied"

        session = FakeSession(handler)
        client = make_ups_client(settings, session, clock)

        record = await client.track("1Z999")

        assert record.kind is TrackingStatusKind.AUTH_ERROR
        assert record.status == "UPS Auth Error"
        assert record.is_error is True
        assert len(session.calls_to(DETAILS)) == 2

    @pytest.mark.asyncio
    async def test_missing_credentials_degrade_without_network(self, clock):
        settings = make_settings(UPS_CLIENT_ID=None, UPS_CLIENT_SECRET=None)
        session = FakeSession(ups_handler())
        client = make_ups_client(settings, session, clock)

        record = await client.track("1Z999")

        assert record.kind is TrackingStatusKind.AUTH_ERROR
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_failed_exchange_backs_off(self, settings, clock):
        """Tras un OAuth fallido no se reintenta durante el backoff."""
        session = FakeSession(lambda m, u, k: (401, "invalid_client"))
        client = make_ups_client(settings, session, clock)

        first = await client.track("1Z1")
        second = await client.track("1Z2")

        assert first.kind is TrackingStatusKind.AUTH_ERROR
        assert second.kind is TrackingStatusKind.AUTH_ERROR
        assert len(session.calls_to(OAUTH)) == 1

        clock.advance(settings.UPS_AUTH_FAILURE_BACKOFF_SECONDS)
        await client.track("1Z3")
        assert len(session.calls_to(OAUTH)) == 2

    @pytest.mark.asyncio
    async def test_auth_error_not_cached(self, settings, clock):
        session = FakeSession(lambda m, u, k: (500, "oauth down"))
        client = make_ups_client(settings, session, clock)

        await client.track("1Z999")

        assert client.tracking_cache.get("1Z999") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [(500, "boom"), (404, "not found"), asyncio.TimeoutError(), aiohttp.ClientConnectionError("reset"), (200, {})],
    )
    async def test_fetch_failures_become_pending_update(self, settings, clock, failure):
        """Cualquier falla de consulta -> 'Pending Update' con isError."""

        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": "tok", "expires_in": 3600}
            return failure

        session = FakeSession(handler)
        client = make_ups_client(settings, session, clock)

        record = await client.track("1Z999")

        assert record.kind is TrackingStatusKind.PENDING_UPDATE
        assert record.status == "Pending Update"
        assert record.is_error is True
        assert record.tracking_url.endswith("1Z999")

    @pytest.mark.asyncio
    async def test_malformed_nested_body_never_raises(self, settings, clock):
        body = {"trackResponse": {"shipment": [{"package": [{"activity": [{"status": "Delivered"}]}]}]}}

        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": "tok", "expires_in": 3600}
            return 200, body

        client = make_ups_client(settings, FakeSession(handler), clock)

        record = await client.track("1Z999")

        assert record.kind is TrackingStatusKind.UNKNOWN
        assert record.is_error is False

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_cached_pending_update(self, settings, clock):
        """Un error inesperado durante la consulta también degrada a centinela."""

        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": "tok", "expires_in": 3600}
            return RuntimeError("boom")

        session = FakeSession(handler)
        client = make_ups_client(settings, session, clock)

        first = await client.track("1Z999")
        second = await client.track("1Z999")

        assert first.kind is TrackingStatusKind.PENDING_UPDATE
        assert first.is_error is True
        assert second == first
        assert len(session.calls_to(DETAILS)) == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_cached_briefly(self, settings, clock):
        """Las fallas se cachean TRACKING_ERROR_CACHE_TTL_SECONDS."""

        def handler(method, url, kwargs):
            if url.endswith(OAUTH):
                return 200, {"access_token": "tok", "expires_in": 3600}
            return 503, "busy"

        session = FakeSession(handler)
        client = make_ups_client(settings, session, clock)

        await client.track("1Z999")
        await client.track("1Z999")
        assert len(session.calls_to(DETAILS)) == 1

        clock.advance(settings.TRACKING_ERROR_CACHE_TTL_SECONDS)
        await client.track("1Z999")
        assert len(session.calls_to(DETAILS)) == 2


class TestGetToken:
    @pytest.mark.asyncio
    async def test_oauth_without_access_token(self, settings, clock):
        session = FakeSession(lambda m, u, k: (200, {"token_type": "Bearer"}))
        client = make_ups_client(settings, session, clock)

        with pytest.raises(AuthError):
            await client.get_token()

        assert client.token_store.in_backoff() is True

    @pytest.mark.asyncio
    async def test_default_lifetime_when_expires_in_missing(self, settings, clock):
        session = FakeSession(lambda m, u, k: (200, {"access_token": "tok"}))
        client = make_ups_client(settings, session, clock)

        assert await client.get_token() == "tok"

        clock.advance(3600 - settings.UPS_TOKEN_SAFETY_MARGIN_SECONDS - 1)
        assert client.token_store.get_valid() == "tok"

    def test_is_trackable(self, settings, clock):
        client = make_ups_client(settings, FakeSession(ups_handler()), clock)

        assert client.is_trackable("1Z999") is True
        assert client.is_trackable(" 1z999") is True
        assert client.is_trackable("9400") is False
        assert client.is_trackable(None) is False
