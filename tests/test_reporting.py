"""
tests/test_reporting.py — Tests for the contractor lead feed and the admin
dashboard summary.
"""

from datetime import datetime, timedelta

import pytest

from leadengine.db import repository
from leadengine.db.models import AssignmentMethod, LeadStatus, UserRole
from leadengine.exceptions import AuthorizationError, NotFoundError
from leadengine.services.auth import Principal
from leadengine.services.reporting import contractor_lead_feed, dashboard_summary

AS_OF = datetime(2025, 1, 10, 12, 0, 0)


def _contractor_principal(email="contractor1@example.com", user_id="user-c1"):
    return Principal(user_id=user_id, role=UserRole.CONTRACTOR, email=email)


# ── contractor_lead_feed ──────────────────────────────────────────────────────

class TestContractorLeadFeed:
    def test_sees_leads_in_assigned_zips(self, db, make_contractor, make_lead):
        make_contractor(assigned_zip_codes=["01701", "02481"])
        local = make_lead(email="a@x.com", zip="02481")
        make_lead(email="b@x.com", zip="90210")

        feed = contractor_lead_feed(db, _contractor_principal(), as_of=AS_OF)

        assert [lead.id for lead in feed["leads"]] == [local.id]
        assert feed["assigned_zip_codes"] == ["01701", "02481"]
        assert feed["serves_all_zipcodes"] is False

    def test_sees_leads_assigned_outside_territory(self, db, make_contractor, make_lead):
        contractor = make_contractor(assigned_zip_codes=["01701"])
        direct = make_lead(email="a@x.com", zip="90210", assigned_contractor_id=contractor.id)
        shared = make_lead(email="b@x.com", zip="10001", created_at=AS_OF - timedelta(days=1))
        repository.record_assignment(db, shared.id, contractor.id, AssignmentMethod.MANUAL)
        db.commit()
        make_lead(email="c@x.com", zip="10001")

        feed = contractor_lead_feed(db, _contractor_principal(), as_of=AS_OF)

        assert {lead.id for lead in feed["leads"]} == {direct.id, shared.id}

    def test_serves_all_sees_every_lead_newest_first(self, db, make_contractor, make_lead):
        make_contractor(serves_all_zipcodes=True, assigned_zip_codes=[])
        older = make_lead(email="a@x.com", zip="90210", created_at=AS_OF - timedelta(days=3))
        newer = make_lead(email="b@x.com", zip=None, created_at=AS_OF - timedelta(days=1))

        feed = contractor_lead_feed(db, _contractor_principal(), as_of=AS_OF)

        assert [lead.id for lead in feed["leads"]] == [newer.id, older.id]

    def test_stats(self, db, make_contractor, make_lead):
        make_contractor()
        make_lead(email="a@x.com", lead_score=80, created_at=AS_OF - timedelta(days=2))
        make_lead(email="b@x.com", lead_score=50, created_at=AS_OF - timedelta(days=6))
        make_lead(email="c@x.com", lead_score=20, created_at=AS_OF - timedelta(days=30))

        stats = contractor_lead_feed(db, _contractor_principal(), as_of=AS_OF)["stats"]

        assert stats == {
            "total_leads": 3,
            "high_value_leads": 2,
            "recent_leads": 2,
            "avg_lead_score": 50.0,
        }

    def test_empty_feed_stats(self, db, make_contractor):
        make_contractor(assigned_zip_codes=["01701"])

        stats = contractor_lead_feed(db, _contractor_principal(), as_of=AS_OF)["stats"]

        assert stats["total_leads"] == 0
        assert stats["avg_lead_score"] == 0.0

    def test_email_falls_back_to_profile(self, db, make_contractor, make_profile):
        contractor = make_contractor()
        make_profile("user-c1", email="contractor1@example.com", role=UserRole.CONTRACTOR)

        feed = contractor_lead_feed(db, _contractor_principal(email=None), as_of=AS_OF)

        assert feed["contractor"].id == contractor.id

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.HOMEOWNER])
    def test_non_contractor_is_forbidden(self, db, role):
        with pytest.raises(AuthorizationError) as exc_info:
            contractor_lead_feed(db, Principal(user_id="u", role=role, email="u@x.com"))
        assert exc_info.value.status_code == 403

    def test_missing_principal_is_unauthorized(self, db):
        with pytest.raises(AuthorizationError) as exc_info:
            contractor_lead_feed(db, None)
        assert exc_info.value.status_code == 401

    def test_contractor_without_record(self, db):
        with pytest.raises(NotFoundError):
            contractor_lead_feed(db, _contractor_principal(email="nobody@example.com"))


# ── dashboard_summary ─────────────────────────────────────────────────────────

class TestDashboardSummary:
    def test_empty_database(self, db):
        summary = dashboard_summary(db)

        assert summary["leads"]["total_leads"] == 0
        assert summary["leads"]["avg_lead_score"] == 0.0
        assert summary["users"]["total_users"] == 0
        assert summary["contractors"]["avg_conversion_rate"] == 0.0

    def test_lead_section(self, db, make_lead):
        make_lead(email="a@x.com", lead_score=70, intent_score=60, status=LeadStatus.NEW)
        make_lead(email="b@x.com", lead_score=40, intent_score=25, status=LeadStatus.CONVERTED)
        make_lead(email="c@x.com", lead_score=55, intent_score=50, status=LeadStatus.ASSIGNED)

        leads = dashboard_summary(db)["leads"]

        assert leads["total_leads"] == 3
        assert leads["high_value_leads"] == 2
        assert leads["avg_lead_score"] == 55.0
        assert leads["avg_intent_score"] == 45.0
        assert leads["new_leads"] == 1
        assert leads["assigned_leads"] == 1
        assert leads["quoted_leads"] == 0
        assert leads["converted_leads"] == 1
        assert leads["by_status"]["dead"] == 0

    def test_user_section_zero_filled(self, db, make_profile):
        make_profile("u1", role=UserRole.HOMEOWNER)
        make_profile("u2", role=UserRole.HOMEOWNER)
        make_profile("u3", role=UserRole.ADMIN)

        users = dashboard_summary(db)["users"]

        assert users == {
            "total_users": 3,
            "by_role": {"admin": 1, "contractor": 0, "homeowner": 2},
        }

    def test_contractor_section(self, db, make_contractor):
        make_contractor(leads_received_count=10, leads_converted_count=5)
        make_contractor(leads_received_count=4, leads_converted_count=1)
        make_contractor(is_active_subscriber=False, leads_received_count=0)

        contractors = dashboard_summary(db)["contractors"]

        assert contractors["total_contractors"] == 3
        assert contractors["active_subscribers"] == 2
        # (50.0 + 25.0 + 0.0) / 3
        assert contractors["avg_conversion_rate"] == 25.0
        assert contractors["total_leads_received"] == 14
        assert contractors["total_leads_converted"] == 6
