"""Tests for campaign audience selection and recipient addressing."""

from types import SimpleNamespace

import pytest

from app.models.communication import CommunicationType, TargetAudience
from app.services.campaigns import (
    MESSAGE_TEMPLATES,
    recipient_address,
    recipients_query,
    select_recipients,
)


def person(role="observer", status="verified", parish=None, deployment_parish=None, phone="+1876555", email="o@x.org"):
    return SimpleNamespace(
        role=role,
        verification_status=status,
        parish=parish,
        deployment_parish=deployment_parish,
        phone_number=phone,
        email=email,
    )


class TestSelectRecipients:
    def test_all_audience_takes_every_observer(self):
        people = [person(status="verified"), person(status="pending"), person(role="admin")]

        assert len(select_recipients(people, TargetAudience.ALL)) == 2

    @pytest.mark.parametrize("audience,expected", [("verified", 1), ("pending", 2)])
    def test_status_audiences(self, audience, expected):
        people = [person(status="verified"), person(status="pending"), person(status="pending")]

        assert len(select_recipients(people, audience)) == expected

    def test_rejected_observers_only_in_all(self):
        people = [person(status="rejected")]

        assert select_recipients(people, "all") == people
        assert select_recipients(people, "verified") == []

    def test_parish_filter_matches_home_or_deployment(self):
        home = person(parish="Kingston")
        deployed = person(parish="St. Ann", deployment_parish="kingston")
        elsewhere = person(parish="Portland")

        chosen = select_recipients([home, deployed, elsewhere], "all", {"parish": "KINGSTON"})

        assert chosen == [home, deployed]

    def test_role_filter_switches_audience(self):
        coordinator = person(role="parish_coordinator")
        observer = person()

        assert select_recipients([coordinator, observer], "all", {"role": "parish_coordinator"}) == [coordinator]

    def test_admins_are_never_targeted(self):
        admin = person(role="admin")
        observer = person()

        assert select_recipients([admin, observer], "all", {"role": "admin"}) == [observer]


class TestRecipientsQuery:
    def test_query_filters_role_and_status(self):
        sql = str(recipients_query("verified", {"parish": "Kingston"}))

        assert "profiles.role" in sql
        assert "profiles.verification_status" in sql
        assert "lower(profiles.parish)" in sql or "ILIKE" in sql.upper()

    def test_all_audience_has_no_status_clause(self):
        assert "verification_status =" not in str(recipients_query("all"))


class TestAddresses:
    def test_phone_for_sms_and_whatsapp(self):
        p = person(phone="+18765550000")
        assert recipient_address(p, CommunicationType.SMS) == "+18765550000"
        assert recipient_address(p, "whatsapp") == "+18765550000"

    def test_email_for_email(self):
        assert recipient_address(person(email="a@b.org"), "email") == "a@b.org"

    def test_missing_address(self):
        assert recipient_address(person(phone=None), "sms") is None
        assert recipient_address(person(email=""), "email") is None


def test_templates_cover_every_channel():
    assert set(MESSAGE_TEMPLATES) == {c.value for c in CommunicationType}
    assert all(len(texts) == 3 for texts in MESSAGE_TEMPLATES.values())
