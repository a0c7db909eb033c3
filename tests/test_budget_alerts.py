"""
Tests for the budget alert pipeline.
Covers threshold evaluation, spend aggregation, alert deduplication and the
per-event entry point.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from budget_alerts import (
    already_alerted,
    budget_alert_message,
    handle_expense_change,
    record_alert,
    should_alert,
    spent_in_window,
)
from database import BudgetAlert
from schemas import ExpenseChangeEvent
from tests.conftest import RecordingDispatcher, add_expense, at, make_settings, make_user

NOW = datetime(2026, 10, 21, 15, 0)


def change_event(user_id="user-1"):
    return ExpenseChangeEvent(fullDocument={"userId": user_id, "amount": "10.00"})


class TestShouldAlert:
    """Threshold evaluation."""

    @pytest.mark.parametrize("limit", [None, 0, -5])
    def test_missing_or_non_positive_limit_never_alerts(self, limit):
        assert should_alert(Decimal("1000"), limit, 80) is False

    def test_threshold_is_inclusive(self):
        assert should_alert(Decimal("80"), Decimal("100"), 80) is True

    def test_limit_is_exclusive(self):
        assert should_alert(Decimal("100"), Decimal("100"), 80) is False

    def test_below_threshold(self):
        assert should_alert(Decimal("79.99"), Decimal("100"), 80) is False

    def test_unset_threshold_defaults_to_80(self):
        assert should_alert(Decimal("80"), Decimal("100"), None) is True
        assert should_alert(Decimal("79"), Decimal("100"), None) is False

    def test_custom_threshold(self):
        assert should_alert(Decimal("50"), Decimal("100"), 50) is True


class TestSpentInWindow:
    """Spend aggregation for one owner and window."""

    def test_sums_only_the_window_and_owner(self, db):
        add_expense(db, "30.00", at(21, 8))
        add_expense(db, "25.50", at(21, 23, 59))
        add_expense(db, "99.00", at(20, 23, 59))
        add_expense(db, "99.00", at(22, 0))
        add_expense(db, "99.00", at(21, 9), user_id="someone-else")

        total = spent_in_window(db, "user-1", at(21, 0), at(22, 0))
        assert total == Decimal("55.50")

    def test_missing_amount_counts_as_zero(self, db):
        add_expense(db, "12.00", at(21, 8))
        add_expense(db, None, at(21, 9))

        assert spent_in_window(db, "user-1", at(21, 0), at(22, 0)) == Decimal("12.00")

    def test_no_expenses_is_zero(self, db):
        assert spent_in_window(db, "user-1", at(21, 0), at(22, 0)) == Decimal("0.00")


class TestAlertDeduplication:
    """Exact-total alert markers."""

    def test_second_record_for_same_total_is_rejected(self, db):
        assert already_alerted(db, "user-1", "daily_budget", Decimal("85.00")) is False
        assert record_alert(db, "user-1", "daily_budget", "daily", Decimal("85.00")) is True
        assert already_alerted(db, "user-1", "daily_budget", Decimal("85.00")) is True

        assert record_alert(db, "user-1", "daily_budget", "daily", Decimal("85.00")) is False
        assert db.query(BudgetAlert).count() == 1

    def test_different_total_is_a_new_alert(self, db):
        record_alert(db, "user-1", "daily_budget", "daily", Decimal("85.00"))
        assert already_alerted(db, "user-1", "daily_budget", Decimal("85.01")) is False

    def test_markers_are_per_budget_kind(self, db):
        record_alert(db, "user-1", "daily_budget", "daily", Decimal("85.00"))
        assert already_alerted(db, "user-1", "weekly_budget", Decimal("85.00")) is False


class TestBudgetAlertMessage:

    def test_message_content(self):
        message = budget_alert_message("tok", "weekly", Decimal("85"), Decimal("100"), 80)
        assert message.title == "Weekly Budget Alert"
        assert message.body == "You've spent $85.00 of $100.00 (80% threshold reached)"
        assert message.data == {
            "type": "budget_alert",
            "period": "weekly",
            "spent": "85.00",
            "budget": "100.00",
        }
        assert message.channel_id == "budget_alerts"


class TestHandleExpenseChange:
    """End-to-end budget pipeline."""

    def test_daily_threshold_crossing_sends_one_alert(self, db, dispatcher):
        make_user(db)
        make_settings(db, daily_budget=Decimal("100"), alert_threshold=80)
        add_expense(db, "30.00", at(21, 8))
        add_expense(db, "25.00", at(21, 11))
        add_expense(db, "30.00", at(21, 14))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.alerts_sent == 1
        assert outcome.errors == 0
        assert [p.period for p in outcome.periods] == ["daily"]
        assert outcome.periods[0].total_spent == Decimal("85.00")
        assert len(dispatcher.sent) == 1
        assert "85.00" in dispatcher.sent[0].body
        assert "100.00" in dispatcher.sent[0].body

        alert = db.query(BudgetAlert).one()
        assert alert.budget_key == "daily_budget"
        assert alert.period == "daily"
        assert alert.amount == Decimal("85.00")

    def test_same_total_is_not_alerted_twice(self, db, dispatcher):
        make_user(db)
        make_settings(db, daily_budget=Decimal("100"))
        add_expense(db, "85.00", at(21, 8))

        handle_expense_change(change_event(), db, dispatcher, now=NOW)
        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.periods[0].status == "already_alerted"
        assert len(dispatcher.sent) == 1
        assert db.query(BudgetAlert).count() == 1

    def test_reaching_the_limit_does_not_alert(self, db, dispatcher):
        make_user(db)
        make_settings(db, daily_budget=Decimal("100"))
        add_expense(db, "85.00", at(21, 8))
        handle_expense_change(change_event(), db, dispatcher, now=NOW)

        add_expense(db, "15.00", at(21, 14))
        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.periods[0].status == "over_budget"
        assert outcome.alerts_sent == 0
        assert len(dispatcher.sent) == 1

    def test_below_threshold(self, db, dispatcher):
        make_user(db)
        make_settings(db, monthly_budget=Decimal("1000"))
        add_expense(db, "100.00", at(3))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.periods[0].period == "monthly"
        assert outcome.periods[0].status == "below_threshold"
        assert dispatcher.sent == []

    def test_unset_and_zero_limits_are_skipped(self, db, dispatcher):
        make_user(db)
        make_settings(db, daily_budget=Decimal("0"), monthly_budget=Decimal("500"))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert [p.period for p in outcome.periods] == ["monthly"]

    def test_failed_period_does_not_block_the_others(self, db):
        dispatcher = RecordingDispatcher(fail_on=lambda m: m.data.get("period") == "daily")
        make_user(db)
        make_settings(db, daily_budget=Decimal("100"), weekly_budget=Decimal("100"))
        add_expense(db, "85.00", at(21, 8))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        statuses = {p.period: p.status for p in outcome.periods}
        assert statuses == {"daily": "error", "weekly": "alerted"}
        assert outcome.errors == 1
        assert outcome.alerts_sent == 1
        # nothing recorded for the period whose send failed
        keys = [a.budget_key for a in db.query(BudgetAlert).all()]
        assert keys == ["weekly_budget"]

    def test_missing_user_id_is_skipped(self, db, dispatcher):
        outcome = handle_expense_change(ExpenseChangeEvent(), db, dispatcher, now=NOW)
        assert outcome.skipped == "missing_user"

    def test_no_settings_is_skipped(self, db, dispatcher):
        make_user(db)
        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)
        assert outcome.skipped == "no_settings"

    def test_disabled_notifications_are_skipped(self, db, dispatcher):
        make_user(db)
        make_settings(db, daily_budget=Decimal("100"), notifications_enabled=False)
        add_expense(db, "85.00", at(21, 8))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.skipped == "notifications_disabled"
        assert dispatcher.sent == []

    def test_missing_push_token_is_skipped(self, db, dispatcher):
        make_user(db, token=None)
        make_settings(db, daily_budget=Decimal("100"))

        outcome = handle_expense_change(change_event(), db, dispatcher, now=NOW)

        assert outcome.skipped == "no_token"
