# tests/test_notification_service.py - channel fan-out, escalation and cleanup

from unittest.mock import MagicMock

import pytest
import redis
from firebase_admin import exceptions as firebase_exceptions, messaging

from database import session_scope
from models import User
from services.notification_service import (
    DeliveryStatus,
    EmailChannel,
    NotificationChannel,
    NotificationDispatcher,
    NotificationKind,
    NotificationPriority,
    NotificationRequest,
    PushChannel,
    SmsChannel,
)
from tests.conftest import RecordingChannel, make_user
from utils.delivery import ProviderResult
from utils.email import BrevoEmailProvider
from utils.push import FcmPushProvider
from utils.realtime import RedisRealtimeProvider, user_channel
from utils.sms import TelnyxSmsProvider

WS = NotificationChannel.WEBSOCKET
PUSH = NotificationChannel.PUSH
EMAIL = NotificationChannel.EMAIL
SMS = NotificationChannel.SMS


def _load_user(session_factory, user_id):
    with session_scope(session_factory) as db:
        return db.query(User).filter(User.id == user_id).one()


class TestResolveChannels:

    def test_defaults_to_websocket_and_email(self):
        dispatcher = NotificationDispatcher()
        assert dispatcher.resolve_channels(None, NotificationPriority.MEDIUM) == (WS, EMAIL)

    @pytest.mark.parametrize("priority", [NotificationPriority.HIGH, NotificationPriority.URGENT])
    def test_high_priority_adds_sms(self, priority):
        dispatcher = NotificationDispatcher(sms_escalation="high")
        assert dispatcher.resolve_channels([WS], priority) == (WS, SMS)

    def test_low_priority_never_adds_sms(self):
        dispatcher = NotificationDispatcher(sms_escalation="high")
        assert dispatcher.resolve_channels([WS, EMAIL], NotificationPriority.LOW) == (WS, EMAIL)

    def test_high_with_email_policy_requires_email(self):
        dispatcher = NotificationDispatcher(sms_escalation="high_with_email")
        assert dispatcher.resolve_channels([WS], NotificationPriority.HIGH) == (WS,)
        assert dispatcher.resolve_channels([WS, EMAIL], NotificationPriority.HIGH) == (WS, EMAIL, SMS)

    def test_off_policy_never_escalates(self):
        dispatcher = NotificationDispatcher(sms_escalation="off")
        assert dispatcher.resolve_channels([EMAIL], NotificationPriority.URGENT) == (EMAIL,)

    def test_explicit_sms_is_not_duplicated(self):
        dispatcher = NotificationDispatcher()
        assert dispatcher.resolve_channels([SMS, WS, SMS], NotificationPriority.HIGH) == (WS, SMS)


class TestDispatch:

    def test_each_requested_channel_receives_the_notification(self, dispatcher, channels):
        report = dispatcher.dispatch(
            user_id=7,
            kind=NotificationKind.SYSTEM_ALERT,
            title="Heads up",
            message="Water shut-off tomorrow",
            channels=[WS, EMAIL, PUSH],
        )

        assert report == {WS: DeliveryStatus.SENT, PUSH: DeliveryStatus.SENT, EMAIL: DeliveryStatus.SENT}
        assert channels[SMS].requests == []
        request = channels[WS].requests[0]
        assert request.user_id == 7
        assert request.as_payload()["type"] == "SYSTEM_ALERT"

    def test_failing_channel_does_not_block_others(self, channels):
        dispatcher = NotificationDispatcher()
        dispatcher.subscribe(RecordingChannel(WS, error=RuntimeError("socket server gone")))
        dispatcher.subscribe(channels[EMAIL])
        dispatcher.subscribe(channels[SMS])

        report = dispatcher.dispatch(
            user_id=1,
            kind=NotificationKind.PAYMENT_DUE,
            title="Invoice",
            message="Due soon",
            priority=NotificationPriority.HIGH,
        )

        assert report[WS] == DeliveryStatus.FAILED
        assert report[EMAIL] == DeliveryStatus.SENT
        assert report[SMS] == DeliveryStatus.SENT

    def test_failed_and_skipped_results_are_reported(self):
        dispatcher = NotificationDispatcher()
        dispatcher.subscribe(RecordingChannel(WS, result=ProviderResult.skip("offline")))
        dispatcher.subscribe(RecordingChannel(EMAIL, result=ProviderResult.failure("HTTP 500")))

        report = dispatcher.dispatch(1, NotificationKind.SYSTEM_ALERT, "t", "m")

        assert report == {WS: DeliveryStatus.SKIPPED, EMAIL: DeliveryStatus.FAILED}

    def test_channel_without_adapter(self):
        dispatcher = NotificationDispatcher()
        report = dispatcher.dispatch(1, NotificationKind.SYSTEM_ALERT, "t", "m", channels=[PUSH])
        assert report == {PUSH: DeliveryStatus.NO_ADAPTER}

    def test_invalid_request_never_raises(self, dispatcher, channels):
        assert dispatcher.dispatch(1, "NOT_A_KIND", "t", "m") == {}
        assert channels[WS].requests == []


class TestChannelAdapters:

    def test_sms_permanent_failure_revokes_phone(self, users, session_factory):
        user = make_user(session_factory)
        provider = MagicMock()
        provider.send_sms.return_value = ProviderResult.failure("invalid number", permanent=True)
        dispatcher = NotificationDispatcher()
        dispatcher.subscribe(SmsChannel(users, provider))

        report = dispatcher.dispatch(user.id, NotificationKind.SYSTEM_ALERT, "Alert", "Body", channels=[SMS])

        assert report[SMS] == DeliveryStatus.FAILED
        provider.send_sms.assert_called_once_with(user.phone, "Alert: Body")
        assert _load_user(session_factory, user.id).phone_verified is False

    def test_sms_transient_failure_keeps_phone(self, users, session_factory):
        user = make_user(session_factory)
        provider = MagicMock()
        provider.send_sms.return_value = ProviderResult.failure("timeout")

        SmsChannel(users, provider).deliver(_request(user.id))

        assert _load_user(session_factory, user.id).phone_verified is True

    def test_sms_skips_unverified_phone(self, users, session_factory):
        user = make_user(session_factory, phone_verified=False)
        provider = MagicMock()

        result = SmsChannel(users, provider).deliver(_request(user.id))

        assert result.skipped
        provider.send_sms.assert_not_called()

    def test_push_permanent_failure_clears_token(self, users, session_factory):
        user = make_user(session_factory, fcm_token="stale-token")
        provider = MagicMock()
        provider.send_push.return_value = ProviderResult.failure("unregistered", permanent=True)

        result = PushChannel(users, provider).deliver(_request(user.id))

        assert not result.ok
        assert _load_user(session_factory, user.id).fcm_token is None

    def test_push_without_token_is_skipped(self, users, session_factory):
        user = make_user(session_factory)
        provider = MagicMock()

        assert PushChannel(users, provider).deliver(_request(user.id)).skipped
        provider.send_push.assert_not_called()

    def test_email_renders_and_sends(self, users, session_factory):
        user = make_user(session_factory, first_name="Asha", last_name="Rao")
        provider = MagicMock()
        provider.render.return_value = "<p>html</p>"
        provider.send_email.return_value = ProviderResult.success()

        result = EmailChannel(users, provider).deliver(_request(user.id))

        assert result.ok
        provider.render.assert_called_once_with("Asha Rao", "Alert", "Body")
        provider.send_email.assert_called_once_with(user.email, "Alert", "<p>html</p>")

    def test_email_for_unknown_user_is_skipped(self, users):
        provider = MagicMock()
        assert EmailChannel(users, provider).deliver(_request(424242)).skipped


def _request(user_id):
    return NotificationRequest(user_id=user_id, kind=NotificationKind.SYSTEM_ALERT, title="Alert", message="Body")


class TestProviders:

    def test_realtime_offline_user_is_skipped(self):
        client = MagicMock()
        client.publish.return_value = 0

        result = RedisRealtimeProvider(client).send_realtime(5, {"title": "x"})

        assert result.skipped
        assert client.publish.call_args[0][0] == user_channel(5)

    def test_realtime_online_user(self):
        client = MagicMock()
        client.publish.return_value = 2
        assert RedisRealtimeProvider(client).send_realtime(5, {"title": "x"}).ok

    def test_realtime_redis_error_is_a_failure(self):
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("refused")

        result = RedisRealtimeProvider(client).send_realtime(5, {})

        assert not result.ok and not result.skipped

    def test_telnyx_invalid_destination_is_permanent(self, monkeypatch):
        response = MagicMock(status_code=422, text="bad number")
        response.json.return_value = {"errors": [{"code": "40310"}]}
        monkeypatch.setattr("utils.sms.requests.post", MagicMock(return_value=response))

        result = TelnyxSmsProvider("key", "+15550001111").send_sms("+10000000000", "hi")

        assert not result.ok
        assert result.permanent

    def test_telnyx_server_error_is_transient(self, monkeypatch):
        response = MagicMock(status_code=503, text="unavailable")
        monkeypatch.setattr("utils.sms.requests.post", MagicMock(return_value=response))

        result = TelnyxSmsProvider("key", "+15550001111").send_sms("+10000000000", "hi")

        assert not result.ok
        assert not result.permanent

    @pytest.mark.parametrize("error, permanent", [
        (messaging.UnregisteredError("Requested entity was not found"), True),
        (messaging.SenderIdMismatchError("SenderId mismatch"), True),
        (firebase_exceptions.InvalidArgumentError("Invalid data key: from"), False),
        (firebase_exceptions.UnavailableError("FCM unavailable"), False),
    ])
    def test_fcm_only_dead_tokens_are_permanent(self, monkeypatch, error, permanent):
        monkeypatch.setattr("utils.push.messaging.send", MagicMock(side_effect=error))
        provider = FcmPushProvider("service-account.json")
        provider._app = MagicMock()

        result = provider.send_push("device-token", "Title", "Body", {"invoiceId": 7})

        assert not result.ok
        assert result.permanent is permanent

    def test_fcm_without_service_account_is_skipped(self):
        assert FcmPushProvider(None).send_push("device-token", "Title", "Body").skipped

    def test_telnyx_unconfigured_is_skipped(self):
        assert TelnyxSmsProvider(None, None).send_sms("+10000000000", "hi").skipped

    def test_brevo_without_key_is_skipped(self):
        assert BrevoEmailProvider(None, "Billing", "no-reply@example.com").send_email("a@b.c", "s", "b").skipped

    def test_brevo_accepts_created(self, monkeypatch):
        post = MagicMock(return_value=MagicMock(status_code=201))
        monkeypatch.setattr("utils.email.requests.post", post)

        result = BrevoEmailProvider("key", "Billing", "no-reply@example.com").send_email("a@b.c", "s", "b")

        assert result.ok
        assert post.call_args.kwargs["json"]["to"] == [{"email": "a@b.c"}]

    def test_brevo_escapes_html(self):
        html = BrevoEmailProvider("key", "Billing", "x@y.z").render("<b>", "Title", "a & b")
        assert "&lt;b&gt;" in html
        assert "a &amp; b" in html
