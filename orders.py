"""
Order engine: placing orders, price snapshots and the status state machine.

Tracking status flow::

    pending -> confirmed -> shipped -> delivered
       \\           \\           \\
        +-----------+-----------+--> cancelled

``delivered`` and ``cancelled`` are terminal. Customers may only cancel a
``pending`` order. Admin status updates overwrite the status without looking
at the flow so operators can correct mistakes. ``payment_status`` is tracked
separately and never checked against the tracking status.
"""
import logging
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId
from pymongo import ReturnDocument

from database import create_document, now_utc, paginate, parse_object_id, parse_pagination, serialize_doc
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import TRACKING_STATUSES, Address, OrderCreateBody, OrderItem
from schemas import Order as OrderSchema
from security import TokenUser

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("shipped", "cancelled"),
    "shipped": ("delivered", "cancelled"),
    "delivered": (),
    "cancelled": (),
}
CANCELLABLE = ("pending",)
REQUIRED_ADDRESS_FIELDS = ("street", "city", "state", "pincode")
DEFAULT_COUNTRY = "India"

MAX_QUANTITY = 1000

MY_ORDERS_PAGE_DEFAULT = 20
MY_ORDERS_PAGE_MAX = 100


def can_cancel(status: str) -> bool:
    return status in CANCELLABLE


def coerce_quantity(raw: Any) -> int:
    """Whole number >= 1; anything unparsable or below one becomes 1.

    Quantities above MAX_QUANTITY are rejected.
    """
    try:
        quantity = int(float(str(raw).strip()))
    except (TypeError, ValueError, OverflowError):
        return 1
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity must be at most {MAX_QUANTITY}")
    return max(1, quantity)


def snapshot_items(lines: List[Dict[str, Any]], plants: Dict[ObjectId, dict]) -> List[OrderItem]:
    return [
        OrderItem(plant=line["plant"], quantity=line["quantity"], price=float(plants[line["plant"]]["price"]))
        for line in lines
    ]


def order_total(items) -> float:
    """Sum of price x quantity over line items (models or raw dicts)."""
    total = 0.0
    for item in items:
        if isinstance(item, dict):
            total += float(item.get("price") or 0) * float(item.get("quantity") or 0)
        else:
            total += item.price * item.quantity
    return total


def _validate_address(body: OrderCreateBody) -> Address:
    raw = body.address.model_dump()
    for key in REQUIRED_ADDRESS_FIELDS:
        value = raw.get(key)
        if not value or not str(value).strip():
            raise ValidationError(f"Address {key} is required")
    return Address(
        street=raw["street"].strip(),
        city=raw["city"].strip(),
        state=raw["state"].strip(),
        pincode=str(raw["pincode"]).strip(),
        country=(raw.get("country") or "").strip() or DEFAULT_COUNTRY,
    )


def create_order(database, user: TokenUser, body: OrderCreateBody) -> dict:
    if not body.items:
        raise ValidationError("Items are required")
    address = _validate_address(body)

    lines = []
    for item in body.items:
        plant_id = item.plant_id if isinstance(item.plant_id, str) else ""
        lines.append({
            "plant": ObjectId(plant_id) if ObjectId.is_valid(plant_id) and len(plant_id) == 24 else None,
            "quantity": coerce_quantity(item.quantity),
        })

    # existence check and insert are not atomic; a plant deleted in between still gets ordered
    wanted = [line["plant"] for line in lines if line["plant"] is not None]
    plants = {p["_id"]: p for p in database["plant"].find({"_id": {"$in": wanted}}, {"price": 1})}
    # one plant document per requested line; unknown or repeated ids reject the whole order
    if len(plants) != len(lines):
        raise ValidationError("One or more plants not found")

    items = snapshot_items(lines, plants)
    order = OrderSchema(
        user=ObjectId(user.id),
        items=items,
        total_amount=order_total(items),
        status="pending",
        address=address,
        payment_method=body.payment_method,
        payment_status="pending",
    )
    doc = create_document(database, "order", order)
    logger.info("Order %s placed by %s for %.2f", doc["_id"], user.id, doc["total_amount"])
    return present_order(doc)


def present_order(order: dict) -> dict:
    out = serialize_doc(order)
    out["can_cancel"] = can_cancel(order.get("status"))
    out["next_statuses"] = list(TRANSITIONS.get(order.get("status"), ()))
    return out


def populate_order_refs(database, orders: List[dict], with_user: bool = True) -> List[dict]:
    """Fill ``items.plant`` with {name, price, image} and ``user`` with {name, email}."""
    plant_ids = {it.get("plant") for o in orders for it in o.get("items") or []}
    plants = {
        p["_id"]: p
        for p in database["plant"].find({"_id": {"$in": list(plant_ids)}}, {"name": 1, "price": 1, "image": 1})
    } if plant_ids else {}
    users = {}
    if with_user:
        user_ids = list({o.get("user") for o in orders})
        users = {
            u["_id"]: u
            for u in database["user"].find({"_id": {"$in": user_ids}}, {"name": 1, "email": 1})
        } if user_ids else {}
    for order in orders:
        for item in order.get("items") or []:
            item["plant"] = plants.get(item.get("plant"), item.get("plant"))
        if with_user:
            order["user"] = users.get(order.get("user"), order.get("user"))
    return orders


def _load_order(database, order_id: str, projection=None) -> dict:
    oid = parse_object_id(order_id, "order id")
    order = database["order"].find_one({"_id": oid}, projection)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _ensure_owner_or_admin(order: dict, user: TokenUser) -> None:
    if str(order.get("user")) != user.id and not user.is_admin:
        raise AuthorizationError("Forbidden")


def get_order(database, order_id: str, user: TokenUser) -> dict:
    order = _load_order(database, order_id)
    _ensure_owner_or_admin(order, user)
    populate_order_refs(database, [order])
    return present_order(order)


def get_payment_status(database, order_id: str, user: TokenUser) -> dict:
    order = _load_order(database, order_id, {"user": 1, "payment_status": 1})
    _ensure_owner_or_admin(order, user)
    return {"order_id": str(order["_id"]), "payment_status": order.get("payment_status")}


def list_my_orders(database, user: TokenUser, status: str = "", page=1, limit=MY_ORDERS_PAGE_DEFAULT) -> dict:
    page, limit = parse_pagination(page, limit, MY_ORDERS_PAGE_DEFAULT, MY_ORDERS_PAGE_MAX)
    filt: Dict[str, Any] = {"user": ObjectId(user.id)}
    status = (status or "").strip().lower()
    if status in TRACKING_STATUSES:
        filt["status"] = status
    orders, total = paginate(database["order"], filt, page, limit)
    populate_order_refs(database, orders, with_user=False)
    return {"orders": [present_order(o) for o in orders], "total": total, "page": page, "limit": limit}


def cancel_order(database, order_id: str, user: TokenUser) -> dict:
    order = _load_order(database, order_id)
    _ensure_owner_or_admin(order, user)
    if not can_cancel(order.get("status")):
        raise ValidationError("Only pending orders can be cancelled")

    # conditional update so a concurrent status change is never overwritten
    updated = database["order"].find_one_and_update(
        {"_id": order["_id"], "status": {"$in": list(CANCELLABLE)}},
        {"$set": {"status": "cancelled", "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValidationError("Only pending orders can be cancelled")
    logger.info("Order %s cancelled by %s", order["_id"], user.id)
    return present_order(updated)


def set_tracking_status(database, order_id: str, status: str, payment_status: Optional[str] = None) -> dict:
    """Admin override: no transition checks. ``delivered`` stamps delivered_at."""
    oid = parse_object_id(order_id, "order id")
    if status not in TRACKING_STATUSES:
        raise ValidationError("Invalid status. Allowed: " + ", ".join(TRACKING_STATUSES))
    updates: Dict[str, Any] = {"status": status, "updated_at": now_utc()}
    if payment_status:
        updates["payment_status"] = payment_status
    if status == "delivered":
        updates["delivered_at"] = now_utc()
    order = database["order"].find_one_and_update(
        {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    if not order:
        raise NotFoundError("Order not found")
    logger.info("Order %s status set to %s", oid, status)
    populate_order_refs(database, [order])
    return present_order(order)


def set_payment_status(database, order_id: str, payment_status: str) -> dict:
    oid = parse_object_id(order_id, "order id")
    order = database["order"].find_one_and_update(
        {"_id": oid},
        {"$set": {"payment_status": payment_status, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise NotFoundError("Order not found")
    logger.info("Order %s payment status set to %s", oid, payment_status)
    return present_order(order)


def delete_order(database, order_id: str) -> None:
    oid = parse_object_id(order_id, "order id")
    result = database["order"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Order not found")
    logger.info("Order %s deleted", oid)
