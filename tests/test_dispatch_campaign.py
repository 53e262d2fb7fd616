"""Tests for the campaign dispatch Celery task."""

import uuid
from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.models.communication import CommunicationLog
from app.services.messaging import MessagingError
from app.workers.communications import dispatch_campaign


def make_campaign(status="pending", channel="sms"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        communication_type=channel,
        target_audience="all",
        target_filter=None,
        message_content="Polls open at 6 AM",
        campaign_name="Reminder",
        sent_count=0,
        failed_count=0,
        sent_at=None,
    )


def recipient(phone="+18765550000"):
    return SimpleNamespace(id=uuid.uuid4(), phone_number=phone, email="o@x.org")


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def session(mock_db):
    @contextmanager
    def _session():
        yield mock_db

    with patch("app.core.database.get_sync_session", _session):
        yield mock_db


def _returns(mock_db, campaign, recipients):
    first = MagicMock()
    first.scalar_one_or_none.return_value = campaign
    second = MagicMock()
    second.scalars.return_value.all.return_value = recipients
    mock_db.execute.side_effect = [first, second]


def _logs(mock_db) -> list[CommunicationLog]:
    return [c[0][0] for c in mock_db.add.call_args_list if isinstance(c[0][0], CommunicationLog)]


class TestDispatchCampaign:
    def test_missing_campaign(self, session):
        _returns(session, None, [])

        result = dispatch_campaign(str(uuid.uuid4()))

        assert result["status"] == "not_found"

    def test_already_sent_campaign_is_skipped(self, session):
        _returns(session, make_campaign(status="sent"), [])

        assert dispatch_campaign(str(uuid.uuid4()))["status"] == "skipped"

    def test_every_recipient_gets_a_log(self, session):
        campaign = make_campaign()
        people = [recipient(), recipient()]
        _returns(session, campaign, people)
        sender = MagicMock()
        sender.send.return_value = "SM123"

        with patch("app.services.messaging.get_sender", return_value=sender):
            result = dispatch_campaign(str(campaign.id))

        assert result["sent_count"] == 2
        assert campaign.status == "sent"
        assert campaign.sent_at is not None
        logs = _logs(session)
        assert [log.status for log in logs] == ["sent", "sent"]
        assert logs[0].external_id == "SM123"
        sender.send.assert_called_with("+18765550000", "Polls open at 6 AM", subject="Reminder")

    def test_one_failure_does_not_stop_the_rest(self, session):
        campaign = make_campaign()
        people = [recipient(phone=None), recipient("+1"), recipient("+2")]
        _returns(session, campaign, people)
        sender = MagicMock()
        sender.send.side_effect = [MessagingError("rejected", status_code=400), "SM2"]

        with patch("app.services.messaging.get_sender", return_value=sender):
            result = dispatch_campaign(str(campaign.id))

        assert result["sent_count"] == 1
        assert result["failed_count"] == 2
        logs = _logs(session)
        assert [log.status for log in logs] == ["failed", "failed", "sent"]
        assert logs[0].error_message == "No sms address on profile"
        assert logs[1].error_message == "rejected"
        assert campaign.status == "sent"

    def test_unconfigured_channel_fails_campaign(self, session):
        campaign = make_campaign()
        _returns(session, campaign, [recipient()])

        with patch(
            "app.services.messaging.get_sender",
            side_effect=MessagingError("Twilio is not configured"),
        ):
            result = dispatch_campaign(str(campaign.id))

        assert result["failed_count"] == 1
        assert campaign.status == "failed"
        assert _logs(session)[0].error_message == "Twilio is not configured"
