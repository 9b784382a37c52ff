from datetime import datetime, timezone

from hooks import (
    age_display,
    apply_referral_update,
    apply_task_status,
    area_display,
    budget_display,
    chain_level,
    commission_display,
    commission_percentage_paid,
    derive_client_state,
    derive_commission_status,
    remaining_commission,
    status_display,
    total_price,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_derive_client_state_orders_roles():
    assert derive_client_state(["referrer", "buyer", "referrer"]) == {
        "active_roles": ["buyer", "referrer"],
        "status": "active",
    }
    assert derive_client_state([]) == {"active_roles": [], "status": "inactive"}


def test_status_display():
    assert status_display({"status": "inactive", "active_roles": []}) == "Inactive"
    assert status_display({"status": "active", "active_roles": ["buyer", "referrer"]}) == "Active (Buyer, Reference)"


def test_commission_display():
    assert commission_display({"type": "percentage", "value": 2.5}) == "2.50%"
    assert commission_display({"type": "fixed", "value": 100000, "currency": "INR"}) == "₹100,000"
    assert commission_display({"type": "fixed", "value": 0}, hide_zero=True) is None
    assert commission_display(None) is None


def test_range_displays():
    assert budget_display({"min": 5000000, "max": 10000000, "currency": "INR"}) == "₹5,000,000 - ₹10,000,000"
    assert budget_display({"min": 3000000}) == "₹3,000,000+"
    assert budget_display({"max": 7000000}) == "Up to ₹7,000,000"
    assert budget_display({}) == "Not specified"
    assert area_display({"min": 800, "max": 1500, "unit": "sq ft"}) == "800 - 1,500 sq ft"
    assert area_display(None) == "Not specified"


def test_total_price_and_age():
    assert total_price(1200, 8500) == 10200000
    assert age_display({"year": 2015, "month": "March"}, today=datetime(2024, 1, 1)) == "9 years old (built March 2015)"
    assert age_display({"year": 2020}, today=datetime(2024, 1, 1)) == "4 years old (built 2020)"
    assert age_display(None) == ""


def test_chain_level():
    assert chain_level(None) == 1
    assert chain_level({"chain_level": 2}) == 3


def test_commission_status_derivation():
    assert derive_commission_status(1000, 0) == "pending"
    assert derive_commission_status(1000, 400) == "partial"
    assert derive_commission_status(1000, 1000) == "paid"
    assert remaining_commission({"promised": 1000, "paid": 400}) == 600
    assert commission_percentage_paid({"promised": 1000, "paid": 250}) == 25
    assert commission_percentage_paid({"promised": 0, "paid": 0}) == 0


def test_referral_update_partial_payment():
    referral = {"status": "active", "commission_status": "pending",
                "commission": {"type": "fixed", "value": 1000, "promised": 1000, "paid": 0}}
    update = apply_referral_update(referral, {"commission": {"paid": 400}}, now=NOW)
    assert update["commission"]["paid"] == 400
    assert update["commission"]["promised"] == 1000
    assert update["commission_status"] == "partial"
    assert "paid_at" not in update


def test_referral_update_full_payment_stamps_paid_at():
    referral = {"status": "active", "commission_status": "partial",
                "commission": {"promised": 1000, "paid": 400}}
    update = apply_referral_update(referral, {"commission": {"paid": 1000}}, now=NOW)
    assert update["commission_status"] == "paid"
    assert update["paid_at"] == NOW


def test_referral_update_keeps_cancelled_and_explicit_status():
    cancelled = {"commission_status": "cancelled", "commission": {"promised": 1000, "paid": 0}}
    assert "commission_status" not in apply_referral_update(cancelled, {"commission": {"paid": 500}}, now=NOW)

    pending = {"commission_status": "pending", "commission": {"promised": 1000, "paid": 0}}
    update = apply_referral_update(pending, {"commission": {"paid": 500}, "commission_status": "pending"}, now=NOW)
    assert update["commission_status"] == "pending"


def test_referral_conversion_stamped_once():
    update = apply_referral_update({"status": "active"}, {"status": "converted"}, now=NOW)
    assert update["converted_at"] == NOW
    again = apply_referral_update({"status": "converted"}, {"status": "converted"}, now=NOW)
    assert "converted_at" not in again


def test_task_status_completion():
    done = apply_task_status({"status": "pending"}, {"status": "completed"}, now=NOW)
    assert done["completed_at"] == NOW
    reopened = apply_task_status({"status": "completed"}, {"status": "in-progress"}, now=NOW)
    assert reopened["completed_at"] is None
    untouched = apply_task_status({"status": "pending"}, {"title": "Call back"}, now=NOW)
    assert "completed_at" not in untouched
