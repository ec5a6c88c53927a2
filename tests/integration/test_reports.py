"""Integration tests for reconciliation reports."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from esusu.models import Participation, Payment, PayoutStatus
from esusu.services.payment_service import PaymentService
from esusu.services.payout_service import PayoutService
from esusu.services.report_service import ReportService
from esusu.services.slot_service import SlotService
from esusu.utils.dates import utcnow


@pytest.fixture
def service(db_session):
    return ReportService(db_session)


@pytest.fixture
def ledger(db_session, admin, make_cycle, make_user, join):
    """One cycle with three members.

    Ada pays nothing on the 50K tier; Bayo settles every overdue 20K payment
    late; Chidi pays nothing on the 20K tier. Ada's payout (number 3) is
    processed.
    """
    cycle = make_cycle(name="Harmattan Circle")
    ada, bayo, chidi = make_user("Ada"), make_user("Bayo"), make_user("Chidi")
    join(ada, cycle, tier="PACK_50K")
    join(bayo, cycle, tier="PACK_20K")
    join(chidi, cycle, tier="PACK_20K")
    payments = PaymentService(db_session)
    assert payments.generate_cycle_payments(cycle.id, admin.id).success

    today = utcnow().date()
    overdue_ids = (
        db_session.execute(
            select(Payment.id).where(Payment.user_id == bayo.id, Payment.due_date < today)
        )
        .scalars()
        .all()
    )
    for payment_id in overdue_ids:
        assert payments.record_payment(payment_id, Decimal("20000")).success

    pick = SlotService(db_session).pick_number(ada.id, 3)
    assert PayoutService(db_session).process_payout(pick.value.payout_id, admin.id, "TRX-ADA").success
    return {
        "cycle": cycle,
        "users": (ada, bayo, chidi),
        "settled": len(overdue_ids),
    }


class TestFinancialSummary:
    def test_profit_reconciles(self, service, ledger):
        settled = ledger["settled"]

        summary = service.get_financial_summary()

        collected = summary["collections"]["total"]
        paid_out = summary["payouts"]["completed"]["amount"]
        assert collected == Decimal("20000") * settled
        assert summary["collections"]["fines"] == Decimal("2000") * settled
        assert paid_out == Decimal("500000")
        assert summary["payouts"]["completed"]["count"] == 1
        assert summary["profit"] == collected - paid_out
        assert summary["net_balance"] == summary["profit"]

    def test_overdue_includes_stamped_fines(self, service, ledger):
        settled = ledger["settled"]

        summary = service.get_financial_summary(ledger["cycle"].id)

        # Ada owes 50000 + 2500 and Chidi 20000 + 2000 for every overdue month
        assert summary["collections"]["overdue"] == Decimal("74500") * settled

    def test_other_cycle_is_empty(self, service, ledger, make_cycle):
        other = make_cycle(name="Empty")
        summary = service.get_financial_summary(other.id)
        assert summary["collections"]["total"] == Decimal("0")
        assert summary["profit"] == Decimal("0")


class TestDefaulters:
    def test_sorted_by_total_overdue(self, service, ledger):
        ada, bayo, chidi = ledger["users"]
        settled = ledger["settled"]

        report = service.get_defaulters_report()

        assert [entry["user_id"] for entry in report] == [ada.id, chidi.id]
        assert bayo.id not in {entry["user_id"] for entry in report}
        assert report[0]["total_overdue"] == Decimal("52500") * settled
        assert report[0]["total_fines"] == Decimal("2500") * settled
        assert len(report[1]["overdue_payments"]) == settled
        oldest = report[0]["overdue_payments"][0]
        assert oldest["month_number"] == 1
        assert oldest["fine_amount"] == Decimal("2500")
        assert oldest["days_past_due"] > 0


class TestCyclePerformance:
    def test_rates(self, service, ledger, make_cycle):
        settled = ledger["settled"]
        make_cycle(name="Empty", start_date=ledger["cycle"].start_date.replace(year=2000))

        report = service.get_cycle_performance()

        assert [row["name"] for row in report] == ["Harmattan Circle", "Empty"]
        row = report[0]
        assert row["participants"] == {"total": 3, "capacity": 20, "occupancy_rate": 15}
        expected = Decimal("90000") * 12
        assert row["collections"]["expected"] == expected
        assert row["collections"]["total"] == Decimal("20000") * settled
        assert row["payouts"] == {"completed": 1, "pending": 0}
        assert report[1]["collections"]["collection_rate"] == 0


class TestMonthlyReconciliation:
    def test_current_month(self, service, ledger):
        now = utcnow()
        settled = ledger["settled"]

        report = service.get_monthly_reconciliation(now.month, now.year)

        assert report["payments"]["count"] == settled
        assert report["payouts"]["count"] == 1
        assert report["payouts"]["details"][0]["transfer_reference"] == "TRX-ADA"
        assert report["summary"]["net_cash_flow"] == Decimal("20000") * settled - Decimal("500000")
        assert report["summary"]["fines_collected"] == Decimal("2000") * settled

    def test_quiet_month(self, service, ledger):
        report = service.get_monthly_reconciliation(1, 2001)
        assert report["payments"]["count"] == 0
        assert report["summary"]["net_cash_flow"] == Decimal("0")


class TestTrendsAndDashboard:
    def test_trailing_twelve_months(self, service, ledger):
        trends = service.get_payment_trends()

        assert len(trends) == 12
        assert trends[-1]["month"] == utcnow().strftime("%b %Y")
        assert trends[-1]["count"] == ledger["settled"]
        assert sum(t["amount"] for t in trends) == Decimal("20000") * ledger["settled"]

    def test_dashboard(self, service, ledger):
        stats = service.get_admin_dashboard_stats()

        assert stats["users"] == {"total": 4, "active": 4, "administrators": 1}
        assert stats["cycles"]["active"] == 1
        assert stats["participations"] == {"total": 3, "opted_out": 0}
        assert stats["payouts"] == {"pending": 0, "completed": 1}
        assert stats["payments"]["pending"] == 36 - ledger["settled"]
        assert stats["financials"]["profit"] == (
            stats["financials"]["total_collected"] - stats["financials"]["total_paid_out"]
        )


class TestMemberDashboard:
    def test_member_who_paid_late(self, service, ledger):
        _, bayo, _ = ledger["users"]
        settled = ledger["settled"]

        dashboard = service.get_member_dashboard(bayo.id)

        active = dashboard["active_participation"]
        assert active["cycle_name"] == "Harmattan Circle"
        assert active["payout_scheduled"] is None
        assert dashboard["stats"] == {
            "total_contributed": Decimal("20000") * settled,
            "pending_payments": 12 - settled,
            "overdue_payments": 0,
            "total_fines": Decimal("2000") * settled,
            "expected_payout": Decimal("200000"),
        }
        assert len(dashboard["participations"]) == 1

    def test_recent_payments_have_fallen_due(self, service, ledger):
        _, bayo, _ = ledger["users"]
        today = utcnow().date()

        recent = service.get_member_dashboard(bayo.id)["recent_payments"]

        assert 2 <= len(recent) <= 5
        assert all(p["due_date"] <= today for p in recent)
        assert [p["due_date"] for p in recent] == sorted((p["due_date"] for p in recent), reverse=True)

    def test_member_with_processed_payout(self, service, ledger):
        ada, _, _ = ledger["users"]

        dashboard = service.get_member_dashboard(ada.id)

        active = dashboard["active_participation"]
        assert active["picked_number"] == 3
        assert active["payout_scheduled"] is not None
        assert active["payout_status"] == PayoutStatus.PAID
        assert dashboard["stats"]["total_contributed"] == Decimal("0")
        assert dashboard["stats"]["overdue_payments"] == ledger["settled"]
        assert dashboard["stats"]["expected_payout"] == Decimal("500000")

    def test_opted_out_member_has_no_active_participation(self, db_session, service, ledger):
        _, _, chidi = ledger["users"]
        participation = db_session.execute(
            select(Participation).where(Participation.user_id == chidi.id)
        ).scalar_one()
        participation.has_opted_out = True
        db_session.commit()

        dashboard = service.get_member_dashboard(chidi.id)

        assert dashboard["active_participation"] is None
        assert dashboard["recent_payments"] == []
        assert dashboard["stats"]["pending_payments"] == 0
        assert dashboard["stats"]["expected_payout"] == Decimal("0")
        assert dashboard["participations"][0]["has_opted_out"] is True

    def test_unknown_user(self, service):
        assert service.get_member_dashboard(404) is None


class TestRecentActivities:
    def test_latest_entries_newest_first(self, service, ledger):
        ada, _, chidi = ledger["users"]

        activity = service.get_recent_activities(limit=5)

        assert len(activity["payments"]) == min(5, ledger["settled"])
        assert all(p["amount"] == Decimal("20000") for p in activity["payments"])
        assert [p["transfer_reference"] for p in activity["payouts"]] == ["TRX-ADA"]
        assert activity["payouts"][0]["user_name"] == ada.full_name
        assert [r["user_name"] for r in activity["registrations"]][0] == chidi.full_name
        assert len(activity["registrations"]) == 3

    def test_limit(self, service, ledger):
        activity = service.get_recent_activities(limit=1)

        assert len(activity["payments"]) == 1
        assert len(activity["registrations"]) == 1

    def test_empty_ledger(self, service):
        assert service.get_recent_activities() == {"payments": [], "payouts": [], "registrations": []}
