import logging
import os
from typing import Dict, FrozenSet, List

from bson import ObjectId
from pymongo import ReturnDocument

from database import create_document, now, to_object_id
from errors import Conflict, InternalError, NotFound, ValidationError
from schemas import Order as OrderSchema

logger = logging.getLogger(__name__)

VERIFY_ORDER_TOTALS = os.getenv("VERIFY_ORDER_TOTALS", "true").lower() in ("1", "true", "yes")
PRICE_TOLERANCE = float(os.getenv("PRICE_TOLERANCE", "0.01"))
TRANSITION_RETRIES = 5

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Pending": frozenset({"Processing", "Cancelled"}),
    "Processing": frozenset({"Shipped", "Delivered", "Cancelled"}),
    "Shipped": frozenset({"Delivered"}),
    "Delivered": frozenset(),
    "Cancelled": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition_effects(order: dict, target: str) -> dict:
    """Fields written alongside a move to ``target``.

    paidAt and deliveredAt are only ever set once.
    """
    stamp = now()
    update = {"status": target, "updatedAt": stamp}
    if target == "Processing" and not order.get("isPaid"):
        update["isPaid"] = True
        update["paidAt"] = stamp
    if target == "Delivered" and not order.get("isDelivered"):
        update["isDelivered"] = True
        update["deliveredAt"] = stamp
    return update


def _attach_users(db, orders: List[dict]) -> List[dict]:
    user_ids = list({o["user"] for o in orders if isinstance(o.get("user"), ObjectId)})
    users = {
        u["_id"]: {"id": u["_id"], "name": u.get("name"), "email": u.get("email")}
        for u in db["user"].find({"_id": {"$in": user_ids}}, {"name": 1, "email": 1})
    }
    for order in orders:
        order["user"] = users.get(order.get("user"), {"id": order.get("user"), "name": None, "email": None})
    return orders


def verify_totals(db, body: OrderSchema) -> None:
    ids = []
    for item in body.orderItems:
        try:
            ids.append(to_object_id(item.product, "Product"))
        except NotFound:
            raise ValidationError(f"Product not found: {item.product}")
    prices = {p["_id"]: p.get("price", 0) for p in db["product"].find({"_id": {"$in": ids}}, {"price": 1})}

    items_price = 0.0
    for oid, item in zip(ids, body.orderItems):
        if oid not in prices:
            raise ValidationError(f"Product not found: {item.product}")
        if abs(prices[oid] - item.price) > PRICE_TOLERANCE:
            raise ValidationError(
                f"Price {item.price} for {item.name} does not match catalog price {prices[oid]}"
            )
        items_price += prices[oid] * item.quantity

    if abs(items_price - body.itemsPrice) > PRICE_TOLERANCE:
        raise ValidationError(
            f"Items price {body.itemsPrice} does not match catalog price {items_price}"
        )
    expected_total = body.itemsPrice + body.shippingPrice + body.taxPrice
    if abs(expected_total - body.totalPrice) > PRICE_TOLERANCE:
        raise ValidationError(
            f"Total price {body.totalPrice} does not match items, shipping and tax ({expected_total})"
        )


def create_order(db, user_id, body: OrderSchema, verify: bool = VERIFY_ORDER_TOTALS) -> dict:
    if not body.orderItems:
        raise ValidationError("No order items")
    if verify:
        verify_totals(db, body)

    data = body.model_dump()
    data["user"] = to_object_id(user_id, "User")
    for item in data["orderItems"]:
        if ObjectId.is_valid(item["product"]):
            item["product"] = ObjectId(item["product"])
    data.update({
        "isPaid": False,
        "paidAt": None,
        "isDelivered": False,
        "deliveredAt": None,
        "status": "Pending",
    })
    order_id = create_document(db, "order", data)
    logger.info("Created order %s for user %s (total %s)", order_id, user_id, body.totalPrice)
    return db["order"].find_one({"_id": ObjectId(order_id)})


def get_order(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    return _attach_users(db, [order])[0]


def list_user_orders(db, user_id) -> list:
    cursor = db["order"].find({"user": to_object_id(user_id, "User")}).sort([("createdAt", -1), ("_id", -1)])
    return list(cursor)


def list_orders(db) -> list:
    orders = list(db["order"].find({}).sort([("createdAt", -1), ("_id", -1)]))
    return _attach_users(db, orders)


def set_status(db, order_id: str, target: str) -> dict:
    """Move an order to ``target`` if the transition table allows it.

    The update is conditional on the status that was read, so two
    transitions on one order never interleave.
    """
    oid = to_object_id(order_id, "Order")
    for _ in range(TRANSITION_RETRIES):
        order = db["order"].find_one({"_id": oid})
        if not order:
            raise NotFound("Order not found")
        current = order.get("status", "Pending")
        if not can_transition(current, target):
            logger.warning("Rejected order %s transition %s -> %s", order_id, current, target)
            raise Conflict(f"Cannot change order status from {current} to {target}")

        updated = db["order"].find_one_and_update(
            {"_id": oid, "status": current},
            {"$set": transition_effects(order, target)},
            return_document=ReturnDocument.AFTER,
        )
        if updated:
            logger.info("Order %s: %s -> %s", order_id, current, target)
            return updated
    raise InternalError("Order is being updated concurrently, please retry")


def mark_paid(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    if order.get("isPaid"):
        return order
    return set_status(db, order_id, "Processing")


def mark_delivered(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    if order.get("isDelivered"):
        return order
    return set_status(db, order_id, "Delivered")
