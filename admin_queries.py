"""
Read-only operator views: order search, order statistics and the contact inbox.

List filters are permissive. A filter value outside its closed set is dropped
rather than rejected, so a stale dashboard link still returns results.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId

from database import is_object_id, paginate, parse_pagination, serialize_doc
from orders import order_total, populate_order_refs, present_order
from schemas import CONTACT_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES, TRACKING_STATUSES

ADMIN_PAGE_DEFAULT = 10
ADMIN_PAGE_MAX = 100
STATS_MONTHS = 12


def _pick(value: Optional[str], allowed, lower: bool = True) -> Optional[str]:
    value = (value or "").strip()
    if lower:
        value = value.lower()
    return value if value in allowed else None


def _matching_user_ids(database, q: str) -> List[ObjectId]:
    rx = {"$regex": re.escape(q), "$options": "i"}
    users = database["user"].find(
        {"$or": [{"name": rx}, {"email": rx}, {"number": rx}]},
        {"_id": 1},
    )
    return [u["_id"] for u in users]


def build_order_filter(database, q: str = "", status: str = "", payment_status: str = "",
                       payment_method: str = "", user_id: str = "") -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    status = _pick(status, TRACKING_STATUSES)
    if status:
        filt["status"] = status
    payment_status = _pick(payment_status, PAYMENT_STATUSES)
    if payment_status:
        filt["payment_status"] = payment_status
    payment_method = _pick(payment_method, PAYMENT_METHODS, lower=False)
    if payment_method:
        filt["payment_method"] = payment_method
    if user_id and is_object_id(user_id):
        filt["user"] = ObjectId(user_id)

    q = (q or "").strip()
    if q:
        if is_object_id(q):
            # an order id matches that order alone, text fields are not consulted
            filt["_id"] = ObjectId(q)
        else:
            ids = _matching_user_ids(database, q)
            if "user" in filt:
                ids = [uid for uid in ids if uid == filt["user"]]
            filt["user"] = {"$in": ids}
    return filt


def search_orders(database, q: str = "", status: str = "", payment_status: str = "",
                  payment_method: str = "", user_id: str = "", page=1,
                  limit=ADMIN_PAGE_DEFAULT) -> Dict[str, Any]:
    page, limit = parse_pagination(page, limit, ADMIN_PAGE_DEFAULT, ADMIN_PAGE_MAX)
    filt = build_order_filter(database, q, status, payment_status, payment_method, user_id)
    orders, total = paginate(database["order"], filt, page, limit)
    for order in orders:
        if order.get("total_amount") is None:
            order["total_amount"] = order_total(order.get("items") or [])
    populate_order_refs(database, orders)
    return {"orders": [present_order(o) for o in orders], "total": total, "page": page, "limit": limit}


def _month_start(now: datetime, months_back: int) -> datetime:
    year, month = now.year, now.month - months_back
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1)


def order_stats(database, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    by_status = {s: {"orders": 0, "revenue": 0} for s in TRACKING_STATUSES}
    for row in database["order"].aggregate([
        {"$group": {"_id": "$status", "orders": {"$sum": 1}, "revenue": {"$sum": "$total_amount"}}},
    ]):
        if row["_id"] in by_status:
            by_status[row["_id"]] = {"orders": row["orders"], "revenue": row["revenue"]}

    # stored created_at values come back as naive UTC
    since = _month_start(now, STATS_MONTHS - 1)
    monthly = [
        {"year": row["_id"]["y"], "month": row["_id"]["m"], "orders": row["orders"], "revenue": row["revenue"]}
        for row in database["order"].aggregate([
            {"$match": {"created_at": {"$gte": since}}},
            {"$group": {
                "_id": {"y": {"$year": "$created_at"}, "m": {"$month": "$created_at"}},
                "orders": {"$sum": 1},
                "revenue": {"$sum": "$total_amount"},
            }},
            {"$sort": {"_id.y": 1, "_id.m": 1}},
        ])
    ]

    overview = {
        "total_orders": sum(v["orders"] for v in by_status.values()),
        "total_revenue": sum(v["revenue"] for v in by_status.values()),
        "statuses": by_status,
    }
    return {"overview": overview, "monthly": monthly}


def search_contacts(database, q: str = "", status: str = "", page=1,
                    limit=ADMIN_PAGE_DEFAULT) -> Dict[str, Any]:
    page, limit = parse_pagination(page, limit, ADMIN_PAGE_DEFAULT, ADMIN_PAGE_MAX)
    filt: Dict[str, Any] = {}
    status = _pick(status, CONTACT_STATUSES)
    if status:
        filt["status"] = status
    q = (q or "").strip()
    if q:
        rx = {"$regex": re.escape(q), "$options": "i"}
        filt["$or"] = [{"name": rx}, {"email": rx}, {"phone": rx}, {"message": rx}]
    contacts, total = paginate(database["contact"], filt, page, limit)
    return {"contacts": serialize_doc(contacts), "total": total, "page": page, "limit": limit}
