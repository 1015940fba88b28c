"""
Catalog queries and product reviews.

Listing parameters arrive as raw query strings and are parsed leniently:
anything that is not a usable number counts as absent, so a bad link
still shows products instead of an error page.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from pymongo import ReturnDocument

from database import create_document, now, to_object_id
from errors import Conflict, InternalError, NotFound
from schemas import Product as ProductSchema, ProductUpdate

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
FEATURED_LIMIT = 8
REVIEW_RETRIES = 10

# Every order ends on _id so equal keys page the same way on each call.
SORT_OPTIONS = {
    "price_asc": [("price", 1), ("_id", 1)],
    "price_desc": [("price", -1), ("_id", 1)],
    "rating": [("rating", -1), ("_id", 1)],
    "newest": [("createdAt", -1), ("_id", -1)],
}
DEFAULT_SORT = [("isFeatured", -1), ("_id", 1)]


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_positive_int(value: Any, default: int) -> int:
    number = parse_number(value)
    if number is None or number < 1:
        return default
    return int(number)


@dataclass
class ProductQuery:
    keyword: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[str] = None
    max_price: Optional[str] = None
    min_rating: Optional[str] = None
    sort: Optional[str] = None
    page: Optional[str] = None
    page_size: Optional[str] = None

    def filters(self) -> dict:
        query: dict = {}
        if self.keyword:
            query["name"] = {"$regex": re.escape(self.keyword), "$options": "i"}
        if self.brand:
            query["brand"] = self.brand
        low, high = parse_number(self.min_price), parse_number(self.max_price)
        if low is not None and high is not None:
            query["price"] = {"$gte": low, "$lte": high}
        rating = parse_number(self.min_rating)
        if rating is not None:
            query["rating"] = {"$gte": rating}
        return query

    def sort_spec(self) -> List[Tuple[str, int]]:
        return SORT_OPTIONS.get(self.sort or "", DEFAULT_SORT)

    def pagination(self) -> Tuple[int, int]:
        page = parse_positive_int(self.page, 1)
        page_size = min(parse_positive_int(self.page_size, DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
        return page, page_size


def search_products(db, params: ProductQuery) -> dict:
    query = params.filters()
    page, page_size = params.pagination()
    total = db["product"].count_documents(query)
    skip = page_size * (page - 1)
    products = []
    # a skip past the last match may not even fit in a BSON int64
    if skip < total:
        products = list(db["product"].find(query).sort(params.sort_spec()).skip(skip).limit(page_size))
    return {
        "products": products,
        "page": page,
        "pages": math.ceil(total / page_size),
        "total": total,
    }


def featured_products(db, limit: int = FEATURED_LIMIT) -> list:
    return list(db["product"].find({"isFeatured": True}).sort(DEFAULT_SORT).limit(limit))


def list_brands(db) -> list:
    return sorted(b for b in db["product"].distinct("brand") if b)


# ----------------------- Catalog store -----------------------
def get_product(db, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    return product


def create_product(db, body: ProductSchema) -> dict:
    data = body.model_dump()
    data.update({"rating": 0.0, "numReviews": 0, "reviews": []})
    product_id = create_document(db, "product", data)
    logger.info("Created product %s (%s)", product_id, body.name)
    return get_product(db, product_id)


def update_product(db, product_id: str, body: ProductUpdate) -> dict:
    update = body.model_dump(exclude_unset=True)
    update = {k: v for k, v in update.items() if v is not None}
    update["updatedAt"] = now()
    product = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id, "Product")},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    logger.info("Updated product %s", product_id)
    return product


def delete_product(db, product_id: str) -> None:
    res = db["product"].delete_one({"_id": to_object_id(product_id, "Product")})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("Deleted product %s", product_id)


# ----------------------- Reviews -----------------------
def submit_review(db, product_id: str, user_id, user_name: str, rating: int, comment: str) -> dict:
    """Append a review and recompute rating/numReviews in one write.

    The write only lands if numReviews still matches what was read, so two
    submissions racing on the same product cannot both pass the duplicate
    check or overwrite each other's review. Losers re-read and retry.
    """
    oid = to_object_id(product_id, "Product")
    for _ in range(REVIEW_RETRIES):
        product = db["product"].find_one({"_id": oid}, {"reviews": 1, "numReviews": 1})
        if not product:
            raise NotFound("Product not found")
        reviews = product.get("reviews", [])
        if any(str(r.get("user")) == str(user_id) for r in reviews):
            raise Conflict("Product already reviewed")

        review = {
            "user": user_id,
            "name": user_name,
            "rating": int(rating),
            "comment": comment,
            "createdAt": now(),
        }
        reviews = reviews + [review]
        count = len(reviews)
        average = sum(r["rating"] for r in reviews) / count

        res = db["product"].update_one(
            {"_id": oid, "numReviews": product.get("numReviews")},
            {"$set": {
                "reviews": reviews,
                "numReviews": count,
                "rating": average,
                "updatedAt": now(),
            }},
        )
        if res.matched_count == 1:
            logger.info("Review added to product %s by %s", product_id, user_id)
            return {"rating": average, "numReviews": count}
        logger.debug("Review write on product %s lost a race, retrying", product_id)
    raise InternalError("Could not save review, please retry")
