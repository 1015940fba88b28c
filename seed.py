"""Demo catalog and admin account for local development."""
import logging
import os

from auth import hash_password
from database import create_document
from schemas import Product as ProductSchema, User as UserSchema

logger = logging.getLogger(__name__)

# POST /seed stays off unless explicitly enabled; it creates an admin account.
SEED_ENABLED = os.getenv("SEED_ENABLED", "false").lower() in ("1", "true", "yes")
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@phonestore.com")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")

BRAND_IMAGES = {
    "Apple": [
        "https://images.unsplash.com/photo-1660774264529-4a5f6b5b6b1a?w=1200",
        "https://images.unsplash.com/photo-1696446702183-cbd3a57ce81f?w=1200",
    ],
    "Samsung": [
        "https://images.unsplash.com/photo-1707303048080-dcaad7cb5f52?w=1200",
        "https://images.unsplash.com/photo-1610945264803-c22b62d2a7b3?w=1200",
    ],
    "Xiaomi": [
        "https://images.unsplash.com/photo-1522125670776-3c7abb882bc2?w=1200",
        "https://images.unsplash.com/photo-1598327105666-5b89351aff97?w=1200",
    ],
    "Google": [
        "https://images.unsplash.com/photo-1696446702183-cbd3a57ce81f?w=1200",
        "https://images.unsplash.com/photo-1598327105854-d0b62f02ea47?w=1200",
    ],
    "OnePlus": [
        "https://images.unsplash.com/photo-1585060544812-6b45742d762f?w=1200",
    ],
}

DEMO_PRODUCTS = [
    {
        "name": "iPhone 15 Pro",
        "brand": "Apple",
        "description": "Titanium design with the A17 Pro chip.",
        "price": 134900,
        "originalPrice": 139900,
        "discount": 4,
        "countInStock": 15,
        "specs": {"display": "6.1\" OLED", "processor": "A17 Pro", "ram": "8GB", "storage": "128GB",
                  "battery": "3274mAh", "camera": "48MP", "os": "iOS 17", "color": ["Natural", "Black"]},
        "tags": ["flagship", "5g"],
        "isFeatured": True,
    },
    {
        "name": "Galaxy S24 Ultra",
        "brand": "Samsung",
        "description": "Built-in S Pen and a 200MP camera.",
        "price": 129999,
        "originalPrice": 134999,
        "discount": 4,
        "countInStock": 20,
        "specs": {"display": "6.8\" AMOLED", "processor": "Snapdragon 8 Gen 3", "ram": "12GB",
                  "storage": "256GB", "battery": "5000mAh", "camera": "200MP", "os": "Android 14",
                  "color": ["Titanium Gray", "Titanium Violet"]},
        "tags": ["flagship", "5g", "stylus"],
        "isFeatured": True,
    },
    {
        "name": "Pixel 8",
        "brand": "Google",
        "description": "Powerful camera and smooth Android experience.",
        "price": 75999,
        "countInStock": 25,
        "specs": {"display": "6.2\" OLED", "processor": "Tensor G3", "ram": "8GB", "storage": "128GB",
                  "battery": "4575mAh", "camera": "50MP", "os": "Android 14", "color": ["Obsidian", "Hazel"]},
        "tags": ["5g"],
        "isNewArrival": True,
    },
    {
        "name": "Redmi Note 13 Pro",
        "brand": "Xiaomi",
        "description": "Mid-range value with a 200MP sensor.",
        "price": 25999,
        "originalPrice": 28999,
        "discount": 10,
        "countInStock": 40,
        "specs": {"display": "6.67\" AMOLED", "processor": "Snapdragon 7s Gen 2", "ram": "8GB",
                  "storage": "256GB", "battery": "5100mAh", "camera": "200MP", "os": "Android 13",
                  "color": ["Midnight Black"]},
        "tags": ["budget", "5g"],
    },
    {
        "name": "OnePlus 12",
        "brand": "OnePlus",
        "description": "Fast charging flagship with Hasselblad tuning.",
        "price": 64999,
        "countInStock": 18,
        "specs": {"display": "6.82\" AMOLED", "processor": "Snapdragon 8 Gen 3", "ram": "12GB",
                  "storage": "256GB", "battery": "5400mAh", "camera": "50MP", "os": "Android 14",
                  "color": ["Flowy Emerald", "Silky Black"]},
        "tags": ["flagship", "5g"],
        "isFeatured": True,
        "isNewArrival": True,
    },
]


def seed(db) -> dict:
    if db["product"].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}
    for p in DEMO_PRODUCTS:
        images = BRAND_IMAGES.get(p["brand"], [])
        prod = ProductSchema(
            **p,
            images=images,
            mobileImages=[u.replace("w=1200", "w=600") for u in images],
        ).model_dump()
        prod.update({"rating": 0.0, "numReviews": 0, "reviews": []})
        create_document(db, "product", prod)
    if db["user"].count_documents({"role": "admin"}) == 0:
        admin = UserSchema(name="Admin", email=ADMIN_EMAIL, password=hash_password(ADMIN_PASSWORD), role="admin")
        create_document(db, "user", admin)
        logger.info("Created admin account %s", ADMIN_EMAIL)
    count = db["product"].count_documents({})
    logger.info("Seeded %d products", count)
    return {"seeded": True, "products": count}


if __name__ == "__main__":
    import database

    logging.basicConfig(level=logging.INFO)
    print(seed(database.get_db()))
