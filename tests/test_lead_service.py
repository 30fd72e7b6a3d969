"""
tests/test_lead_service.py — Tests for lead intake, status tracking and
contractor performance.
"""

from unittest.mock import MagicMock

import pytest

from leadengine.config import settings
from leadengine.db.models import AssignmentMethod, Lead, LeadAssignment, LeadStatus
from leadengine.exceptions import NotFoundError, ValidationError
from leadengine.notifications.notifier import DeliveryOutcome
from leadengine.services.lead_service import (
    change_lead_status,
    contractor_performance,
    record_lead_event,
)

HOT_EVENT = {
    "email": "ann@example.com",
    "phone": "508-555-0100",
    "name": "Ann",
    "zip": "02481",
    "room_type": "kitchen",
    "style": "Contemporary Luxe",
    "wants_quote": True,
}


# ── record_lead_event ─────────────────────────────────────────────────────────

class TestRecordLeadEvent:
    def test_new_lead_is_scored(self, db, notifier):
        result = record_lead_event(db, {"email": "a@x.com"}, notifier=notifier)

        assert result.created is True
        assert result.render_count == 1
        assert result.scores.intent_score == 25
        lead = db.get(Lead, result.lead_id)
        assert lead.intent_score == 25
        assert lead.scoring_version == "v1"

    def test_repeat_event_dedupes_onto_one_lead(self, db, notifier):
        first = record_lead_event(db, {"email": "a@x.com"}, notifier=notifier)
        second = record_lead_event(db, {"email": "A@x.com", "wants_quote": True}, notifier=notifier)

        assert second.lead_id == first.lead_id
        assert second.created is False
        assert second.render_count == 2
        assert second.is_repeat_visitor is True
        assert db.query(Lead).count() == 1

    def test_low_score_lead_is_not_auto_assigned(self, db, make_contractor, notifier):
        make_contractor(serves_all_zipcodes=True)
        result = record_lead_event(db, {"email": "a@x.com"}, notifier=notifier)

        assert result.assignment is None
        assert result.assignment_error is None
        assert db.query(LeadAssignment).count() == 0

    def test_qualifying_lead_is_auto_assigned(self, db, make_contractor, notifier):
        local = make_contractor(assigned_zip_codes=["02481"])
        result = record_lead_event(db, dict(HOT_EVENT), notifier=notifier)

        assert result.scores.overall_score >= settings.min_auto_assign_score_with_quote
        assert result.assignment.contractor_ids == [local.id]
        row = db.query(LeadAssignment).one()
        assert row.assignment_method == AssignmentMethod.AUTOMATIC
        assert db.get(Lead, result.lead_id).status == LeadStatus.ASSIGNED

    def test_assignment_failure_does_not_fail_intake(self, db, notifier):
        result = record_lead_event(db, dict(HOT_EVENT), notifier=notifier)

        assert result.assignment is None
        assert result.assignment_error == "NO_ELIGIBLE_CONTRACTORS"
        lead = db.get(Lead, result.lead_id)
        assert lead.status == LeadStatus.NEW
        assert lead.lead_score == result.scores.overall_score

    def test_auto_assign_can_be_disabled(self, db, make_contractor, notifier, monkeypatch):
        monkeypatch.setattr(settings, "auto_assign_enabled", False)
        make_contractor(assigned_zip_codes=["02481"])

        result = record_lead_event(db, dict(HOT_EVENT), notifier=notifier)

        assert result.assignment is None
        assert db.query(LeadAssignment).count() == 0

    def test_already_assigned_lead_is_not_reassigned(self, db, make_contractor, notifier):
        make_contractor(assigned_zip_codes=["02481"])
        make_contractor(assigned_zip_codes=["02481"])
        record_lead_event(db, dict(HOT_EVENT), notifier=notifier)

        again = record_lead_event(db, dict(HOT_EVENT), notifier=notifier)

        assert again.assignment is None
        assert db.query(LeadAssignment).count() == 1

    def test_quote_request_alerts_admin(self, db):
        spy = MagicMock()
        spy.notify_admin.return_value = DeliveryOutcome(recipient="admin@example.com", delivered=True)
        record_lead_event(db, {"email": "a@x.com", "wants_quote": True}, notifier=spy)
        spy.notify_admin.assert_called_once()

    def test_later_plain_events_do_not_repeat_admin_alert(self, db):
        spy = MagicMock()
        spy.notify_admin.return_value = DeliveryOutcome(recipient="admin@example.com", delivered=True)
        record_lead_event(db, {"email": "a@x.com", "wants_quote": True}, notifier=spy)
        record_lead_event(db, {"email": "a@x.com"}, notifier=spy)
        record_lead_event(db, {"email": "a@x.com", "room_type": "bathroom"}, notifier=spy)

        assert spy.notify_admin.call_count == 1
        assert db.query(Lead).one().wants_quote is True

    def test_explicit_null_flags_keep_stored_values(self, db, notifier):
        record_lead_event(db, {"email": "a@x.com", "wants_quote": True, "social_engaged": True}, notifier=notifier)
        result = record_lead_event(
            db,
            {"email": "a@x.com", "wants_quote": None, "social_engaged": None, "render_count": None},
            notifier=notifier,
        )

        lead = db.get(Lead, result.lead_id)
        assert result.render_count == 2
        assert lead.wants_quote is True
        assert lead.social_engaged is True

    def test_admin_alert_failure_is_swallowed(self, db):
        broken = MagicMock()
        broken.notify_admin.side_effect = RuntimeError("smtp exploded")
        result = record_lead_event(db, {"email": "a@x.com", "wants_quote": True}, notifier=broken)
        assert result.created is True

    def test_missing_identity_rejected(self, db, notifier):
        with pytest.raises(ValidationError):
            record_lead_event(db, {"zip": "01701"}, notifier=notifier)
        assert db.query(Lead).count() == 0

    def test_malformed_zip_rejected(self, db, notifier):
        with pytest.raises(ValidationError):
            record_lead_event(db, {"email": "a@x.com", "zip": "1701"}, notifier=notifier)
        assert db.query(Lead).count() == 0


# ── change_lead_status ────────────────────────────────────────────────────────

class TestChangeLeadStatus:
    def test_conversion_credits_contractor_once(self, db, make_contractor, make_lead):
        contractor = make_contractor(leads_received_count=1)
        lead = make_lead(status=LeadStatus.ASSIGNED, assigned_contractor_id=contractor.id)

        lead, previous = change_lead_status(db, lead.id, LeadStatus.CONVERTED, conversion_value=18500.0)
        change_lead_status(db, lead.id, LeadStatus.CONVERTED)

        assert previous == LeadStatus.ASSIGNED
        assert lead.conversion_value == 18500.0
        assert lead.probability_to_close_score == 100
        db.refresh(contractor)
        assert contractor.leads_converted_count == 1

    def test_leaving_converted_never_debits(self, db, make_contractor, make_lead):
        contractor = make_contractor()
        lead = make_lead(status=LeadStatus.ASSIGNED, assigned_contractor_id=contractor.id)
        change_lead_status(db, lead.id, LeadStatus.CONVERTED)
        change_lead_status(db, lead.id, LeadStatus.DEAD)

        db.refresh(contractor)
        assert contractor.leads_converted_count == 1

    def test_contact_sets_timestamp_and_notes(self, db, make_lead):
        lead = make_lead(status=LeadStatus.ASSIGNED)
        lead, _ = change_lead_status(db, lead.id, LeadStatus.CONTACTED, contractor_notes="Left voicemail")

        assert lead.last_contacted_at is not None
        assert lead.contractor_notes == "Left voicemail"

    def test_dead_lead_has_zero_probability(self, db, make_lead):
        lead = make_lead()
        lead, _ = change_lead_status(db, lead.id, LeadStatus.DEAD)
        assert lead.probability_to_close_score == 0

    def test_unknown_lead(self, db):
        with pytest.raises(NotFoundError):
            change_lead_status(db, 404, LeadStatus.CONTACTED)


# ── contractor_performance ────────────────────────────────────────────────────

class TestContractorPerformance:
    def test_conversion_rate_derived_at_read_time(self, db, make_contractor):
        good = make_contractor(leads_received_count=4, leads_converted_count=1)
        new = make_contractor()

        rows = {row["id"]: row for row in contractor_performance(db)}

        assert rows[good.id]["conversion_rate"] == 25.0
        assert rows[new.id]["conversion_rate"] == 0.0

    def test_inactive_excluded_by_default(self, db, make_contractor):
        make_contractor(is_active_subscriber=False)
        assert contractor_performance(db) == []
        assert len(contractor_performance(db, active_only=False)) == 1
