"""
Tests for the condition router (reminder / scheduling / call).

These tests verify that:
1. reminder and scheduling send one SMS each through Twilio
2. scheduling falls back to tomorrow at 10:00 AM
3. call dispatches without polling or forwarding
4. POST /check-conditions maps failures to HTTP errors
5. SMS recipients are normalized to E.164 before Twilio is called
6. POST /check-conditions requires a bearer token when auth is enabled
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from twilio.base.exceptions import TwilioRestException

from lifecycle import CallHandle, DispatchExhausted, InvalidPhoneNumber
from relay.auth import TokenIssuer
from relay.conditions import (
    DEFAULT_APPOINTMENT_TIME,
    REMINDER_MESSAGE,
    ConditionService,
    appointment_slot,
    normalize_condition_types,
)
from relay.main import app, get_condition_service, get_token_issuer
from relay.models import ConditionUserData
from relay.sms_service import TwilioSmsService

SECRET = "test-jwt-secret"

USER = ConditionUserData(name="Jane", phone="+15551234567", email="jane@x.com")


def make_sms_service(sid: str = "SM123") -> MagicMock:
    sms = MagicMock(spec=TwilioSmsService)
    sms.send_sms.return_value = sid
    return sms


def make_dispatcher(call_id: str = "abc123") -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(return_value=CallHandle(call_id=call_id, phone="+15551234567"))
    return dispatcher


def make_service(sms=None, dispatcher=None) -> ConditionService:
    return ConditionService(
        sms or make_sms_service(),
        dispatcher,
        script_for=lambda name: f"Hello {name}",
        dispatch_attempts=2,
    )


@pytest.fixture
async def client():
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(autouse=True)
def clear_overrides():
    """Start every test with auth off."""
    app.dependency_overrides.clear()
    app.dependency_overrides[get_token_issuer] = lambda: None
    yield
    app.dependency_overrides.clear()


class TestHelpers:

    def test_normalize_single(self):
        assert normalize_condition_types("reminder") == ["reminder"]

    def test_normalize_list(self):
        assert normalize_condition_types(["reminder", "call"]) == ["reminder", "call"]

    def test_normalize_none(self):
        assert normalize_condition_types(None) == []

    def test_slot_defaults_to_tomorrow(self):
        slot = appointment_slot(ConditionUserData(name="Jane"), today=date(2024, 10, 19))

        assert slot == {"date": "2024-10-20", "time": DEFAULT_APPOINTMENT_TIME}

    def test_slot_uses_preference(self):
        data = ConditionUserData(preferredDate="2024-11-02", preferredTime="3:30 PM")

        assert appointment_slot(data) == {"date": "2024-11-02", "time": "3:30 PM"}


class TestConditionService:

    @pytest.mark.asyncio
    async def test_reminder_sends_sms(self):
        sms = make_sms_service()
        service = make_service(sms)

        results = await service.process(["reminder"], USER)

        sms.send_sms.assert_called_once_with("+15551234567", REMINDER_MESSAGE)
        assert results[0].status == "sent"
        assert results[0].detail == "SM123"

    @pytest.mark.asyncio
    async def test_scheduling_sends_confirmation(self):
        sms = make_sms_service()
        service = make_service(sms)
        data = ConditionUserData(phone="+15551234567", preferredDate="2024-11-02", preferredTime="9:00 AM")

        await service.process(["scheduling"], data)

        sms.send_sms.assert_called_once_with(
            "+15551234567",
            "Your appointment is scheduled for 2024-11-02 at 9:00 AM",
        )

    @pytest.mark.asyncio
    async def test_call_dispatches_only(self):
        dispatcher = make_dispatcher()
        service = make_service(dispatcher=dispatcher)

        results = await service.process(["call"], USER)

        assert results[0].status == "dispatched"
        assert results[0].detail == "abc123"
        lead, script, attempts = dispatcher.dispatch.await_args.args
        assert lead.phone == "+15551234567"
        assert lead.name == "Jane"
        assert script == "Hello Jane"
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_multiple_conditions_in_order(self):
        service = make_service(dispatcher=make_dispatcher())

        results = await service.process(["reminder", "call", "bogus"], USER)

        assert [r.status for r in results] == ["sent", "dispatched", "skipped"]

    @pytest.mark.asyncio
    async def test_sms_phone_is_normalized(self):
        sms = make_sms_service()
        service = make_service(sms)

        await service.process(["reminder"], ConditionUserData(name="Jane", phone="(555) 123-4567"))

        sms.send_sms.assert_called_once_with("+15551234567", REMINDER_MESSAGE)

    @pytest.mark.asyncio
    async def test_sms_invalid_phone_not_sent(self):
        sms = make_sms_service()
        service = make_service(sms)

        with pytest.raises(InvalidPhoneNumber):
            await service.process(["scheduling"], ConditionUserData(name="Jane", phone="+923346250250"))

        sms.send_sms.assert_not_called()

    @pytest.mark.asyncio
    async def test_sms_requires_phone(self):
        service = make_service()

        with pytest.raises(ValueError):
            await service.process(["reminder"], ConditionUserData(name="Jane"))

    @pytest.mark.asyncio
    async def test_call_requires_dispatcher(self):
        service = make_service(dispatcher=None)

        with pytest.raises(RuntimeError):
            await service.process(["call"], USER)


class TestTwilioSmsService:

    def test_not_configured(self):
        service = TwilioSmsService(None, None, None)

        assert service.is_configured is False
        with pytest.raises(RuntimeError):
            service.send_sms("+15551234567", "hi")

    def test_send_sms(self):
        twilio_client = MagicMock()
        twilio_client.messages.create.return_value = MagicMock(sid="SM999")
        service = TwilioSmsService(None, None, "+15550000000", client=twilio_client)

        sid = service.send_sms("+15551234567", "hi")

        assert sid == "SM999"
        twilio_client.messages.create.assert_called_once_with(
            body="hi",
            from_="+15550000000",
            to="+15551234567",
        )


class TestCheckConditionsEndpoint:
    """Tests for POST /check-conditions"""

    @pytest.mark.asyncio
    async def test_not_initialized_returns_503(self, client: AsyncClient):
        app.dependency_overrides[get_condition_service] = lambda: None

        response = await client.post("/check-conditions", json={"conditionType": "reminder"})

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_success(self, client: AsyncClient):
        service = make_service(dispatcher=make_dispatcher())
        app.dependency_overrides[get_condition_service] = lambda: service

        response = await client.post(
            "/check-conditions",
            json={"conditionType": ["reminder", "call"], "userData": {"name": "Jane", "phone": "+15551234567"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Condition(s) processed successfully"
        assert [r["status"] for r in data["results"]] == ["sent", "dispatched"]

    @pytest.mark.asyncio
    async def test_twilio_not_configured_returns_503(self, client: AsyncClient):
        service = make_service(sms=TwilioSmsService(None, None, None))
        app.dependency_overrides[get_condition_service] = lambda: service

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "reminder", "userData": {"phone": "+15551234567"}},
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_missing_phone_returns_400(self, client: AsyncClient):
        app.dependency_overrides[get_condition_service] = lambda: make_service()

        response = await client.post("/check-conditions", json={"conditionType": "reminder", "userData": {}})

        assert response.status_code == 400
        assert "missing_phone" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_invalid_phone_returns_400(self, client: AsyncClient):
        sms = make_sms_service()
        app.dependency_overrides[get_condition_service] = lambda: make_service(sms)

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "reminder", "userData": {"phone": "not-a-phone"}},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_phone_number"
        sms.send_sms.assert_not_called()

    @pytest.mark.asyncio
    async def test_twilio_error_returns_502(self, client: AsyncClient):
        sms = make_sms_service()
        sms.send_sms.side_effect = TwilioRestException(400, "https://api.twilio.com", msg="Invalid 'To' number")
        app.dependency_overrides[get_condition_service] = lambda: make_service(sms)

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "reminder", "userData": {"phone": "+15551234567"}},
        )

        assert response.status_code == 502
        assert "sms_failed" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_dispatch_failure_returns_502(self, client: AsyncClient):
        dispatcher = MagicMock()
        dispatcher.dispatch = AsyncMock(side_effect=DispatchExhausted(2))
        app.dependency_overrides[get_condition_service] = lambda: make_service(dispatcher=dispatcher)

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "call", "userData": {"name": "Jane", "phone": "+15551234567"}},
        )

        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "dispatch_exhausted"


class TestCheckConditionsAuth:
    """Bearer auth on POST /check-conditions"""

    @pytest.mark.asyncio
    async def test_missing_token_returns_403(self, client: AsyncClient):
        dispatcher = make_dispatcher()
        app.dependency_overrides[get_token_issuer] = lambda: TokenIssuer(SECRET)
        app.dependency_overrides[get_condition_service] = lambda: make_service(dispatcher=dispatcher)

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "call", "userData": {"name": "Jane", "phone": "+15551234567"}},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Token is required for authentication"
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_token_returns_403(self, client: AsyncClient):
        sms = make_sms_service()
        app.dependency_overrides[get_token_issuer] = lambda: TokenIssuer(SECRET)
        app.dependency_overrides[get_condition_service] = lambda: make_service(sms)
        forged = TokenIssuer("some-other-secret").issue()

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "reminder", "userData": {"phone": "+15551234567"}},
            headers={"Authorization": f"Bearer {forged}"},
        )

        assert response.status_code == 403
        sms.send_sms.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_token_passes(self, client: AsyncClient):
        issuer = TokenIssuer(SECRET)
        app.dependency_overrides[get_token_issuer] = lambda: issuer
        app.dependency_overrides[get_condition_service] = lambda: make_service()

        response = await client.post(
            "/check-conditions",
            json={"conditionType": "reminder", "userData": {"phone": "+15551234567"}},
            headers={"Authorization": f"Bearer {issuer.issue()}"},
        )

        assert response.status_code == 200
