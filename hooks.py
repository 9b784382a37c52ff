"""
Save-hook rules and derived fields.

The client role rule: a client's ``active_roles`` and ``status`` are a pure
function of its ``clientrole`` documents with ``status: "active"``. Every
code path that writes a client role calls ``sync_client_roles`` afterwards.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from pymongo.database import Database

from database import now_utc

logger = logging.getLogger(__name__)

ROLE_ORDER = ("buyer", "seller", "referrer")
ROLE_LABELS = {"buyer": "Buyer", "seller": "Seller", "referrer": "Reference"}
CURRENCY_SYMBOLS = {"INR": "₹"}


# ----------------------------
# Client roles -> client status
# ----------------------------

def derive_client_state(roles: Iterable[str]) -> Dict[str, Any]:
    present = set(roles)
    active_roles = [r for r in ROLE_ORDER if r in present]
    return {
        "active_roles": active_roles,
        "status": "active" if active_roles else "inactive",
    }


def sync_client_roles(database: Database, client_id: ObjectId) -> Dict[str, Any]:
    roles = database["clientrole"].distinct("role", {"client_id": client_id, "status": "active"})
    state = derive_client_state(roles)
    database["client"].update_one(
        {"_id": client_id},
        {"$set": {**state, "updated_at": now_utc()}},
    )
    logger.info(
        "Client %s roles recomputed: status=%s roles=%s",
        client_id, state["status"], ",".join(state["active_roles"]) or "-",
    )
    return state


def status_display(client: Dict[str, Any]) -> str:
    if client.get("status") != "active":
        return "Inactive"
    labels = [ROLE_LABELS.get(r, r) for r in client.get("active_roles") or []]
    return f"Active ({', '.join(labels)})"


# ----------------------------
# Money / ranges
# ----------------------------

def format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _symbol(currency: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get(currency or "INR", currency or "")


def commission_display(commission: Optional[Dict[str, Any]], hide_zero: bool = False) -> Optional[str]:
    if not commission:
        return None
    value = commission.get("value") or 0
    if hide_zero and value == 0:
        return None
    if commission.get("type") == "percentage":
        return f"{format_number(value)}%"
    return f"{_symbol(commission.get('currency'))}{format_number(value)}"


def range_display(bounds: Optional[Dict[str, Any]], prefix: str = "", suffix: str = "") -> str:
    bounds = bounds or {}
    low, high = bounds.get("min"), bounds.get("max")
    if not low and not high:
        return "Not specified"
    if low and high:
        text = f"{prefix}{format_number(low)} - {prefix}{format_number(high)}"
    elif low:
        text = f"{prefix}{format_number(low)}+"
    else:
        text = f"Up to {prefix}{format_number(high)}"
    return f"{text} {suffix}" if suffix else text


def budget_display(budget: Optional[Dict[str, Any]]) -> str:
    return range_display(budget, prefix=_symbol((budget or {}).get("currency")))


def area_display(area: Optional[Dict[str, Any]]) -> str:
    return range_display(area, suffix=(area or {}).get("unit") or "sq ft")


# ----------------------------
# Properties
# ----------------------------

def total_price(area: float, per_sq_ft_rate: float) -> float:
    return area * per_sq_ft_rate


def age_display(age: Optional[Dict[str, Any]], today: Optional[datetime] = None) -> str:
    if not age or not age.get("year"):
        return ""
    years = (today or datetime.now()).year - age["year"]
    built = f"{age['month']} {age['year']}" if age.get("month") else str(age["year"])
    return f"{years} years old (built {built})"


# ----------------------------
# Referrals
# ----------------------------

def chain_level(parent: Optional[Dict[str, Any]]) -> int:
    if parent is None:
        return 1
    return int(parent.get("chain_level") or 1) + 1


def derive_commission_status(promised: float, paid: float) -> str:
    if paid <= 0:
        return "pending"
    if paid >= promised:
        return "paid"
    return "partial"


def remaining_commission(commission: Optional[Dict[str, Any]]) -> float:
    if not commission:
        return 0
    return (commission.get("promised") or 0) - (commission.get("paid") or 0)


def commission_percentage_paid(commission: Optional[Dict[str, Any]]) -> float:
    if not commission or not commission.get("promised"):
        return 0
    return (commission.get("paid") or 0) / commission["promised"] * 100


def apply_referral_update(
    referral: Dict[str, Any], changes: Dict[str, Any], now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the ``$set`` payload for a referral update.

    ``commission`` is merged key by key. ``converted_at`` / ``paid_at`` are
    stamped on the first transition into ``converted`` / ``paid``. A change to
    ``commission.paid`` without an explicit ``commission_status`` re-derives
    the status unless the commission was cancelled.
    """
    now = now or now_utc()
    update = {k: v for k, v in changes.items() if k != "commission"}

    commission = dict(referral.get("commission") or {})
    paid_changed = False
    if changes.get("commission"):
        incoming = changes["commission"]
        paid_changed = "paid" in incoming and incoming["paid"] != commission.get("paid")
        commission.update(incoming)
        update["commission"] = commission

    current_status = referral.get("commission_status", "pending")
    if paid_changed and "commission_status" not in changes and current_status != "cancelled":
        update["commission_status"] = derive_commission_status(
            commission.get("promised") or 0, commission.get("paid") or 0
        )

    if update.get("status") == "converted" and referral.get("status") != "converted":
        update["converted_at"] = now
    if update.get("commission_status") == "paid" and current_status != "paid":
        update["paid_at"] = now
    return update


def referral_view(referral: Dict[str, Any]) -> Dict[str, Any]:
    commission = referral.get("commission")
    referral["commission_display"] = commission_display(commission)
    referral["remaining_commission"] = remaining_commission(commission)
    referral["commission_percentage_paid"] = commission_percentage_paid(commission)
    return referral


# ----------------------------
# Tasks
# ----------------------------

def apply_task_status(task: Dict[str, Any], changes: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    status = changes.get("status")
    if status is None or status == task.get("status"):
        return changes
    changes = dict(changes)
    changes["completed_at"] = (now or now_utc()) if status == "completed" else None
    return changes
