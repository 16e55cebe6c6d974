"""
Seed demo categories, plants and an admin account.

    python seed.py

Idempotent: collections that already hold documents are left alone.
"""
import logging

import config
from category_resolver import Keyword, resolve_category_ids
from database import create_document, get_db
from schemas import Category as CategorySchema
from schemas import Plant as PlantSchema
from schemas import User as UserSchema
from security import hash_password

logger = logging.getLogger(__name__)

DEMO_CATEGORIES = [
    ["Indoor"],
    ["Outdoor"],
    ["Air Purifying"],
    ["Home Decor"],
    ["Succulent"],
    ["Flowering"],
    ["Medicinal"],
    ["Decor"],
    ["Edible"],
    ["Shade"],
]

IMAGE_BASE = "https://www.urvann.com/images/products"

DEMO_PLANTS = [
    ("Money Plant", 99, ["Indoor", "Air Purifying", "Home Decor"], "money-plant"),
    ("Areca Palm", 249, ["Indoor", "Air Purifying"], "areca-palm"),
    ("Bougainvillea", 199, ["Outdoor", "Flowering"], "bougainvillea"),
    ("Snake Plant", 149, ["Indoor", "Succulent", "Air Purifying"], "snake-plant"),
    ("Peace Lily", 129, ["Indoor", "Flowering", "Air Purifying"], "peace-lily"),
    ("Spider Plant", 79, ["Indoor", "Air Purifying", "Home Decor"], "spider-plant"),
    ("Aloe Vera", 69, ["Succulent", "Air Purifying", "Medicinal"], "aloe-vera"),
    ("ZZ Plant", 179, ["Indoor", "Air Purifying"], "zz-plant"),
    ("Jade Plant", 89, ["Succulent", "Indoor", "Home Decor"], "jade-plant"),
    ("Rose", 119, ["Outdoor", "Flowering"], "rose"),
    ("Tulsi", 49, ["Outdoor", "Medicinal"], "tulsi"),
    ("Boston Fern", 99, ["Indoor", "Air Purifying"], "boston-fern"),
    ("Coleus", 79, ["Outdoor", "Shade"], "coleus"),
    ("Calathea", 149, ["Indoor", "Decor"], "calathea"),
    ("Mint", 49, ["Outdoor", "Edible"], "mint"),
    ("Hibiscus", 129, ["Outdoor", "Flowering"], "hibiscus"),
]


def seed(database) -> dict:
    created = {"categories": 0, "plants": 0, "admin": False}
    if database["category"].count_documents({}) == 0:
        for keywords in DEMO_CATEGORIES:
            create_document(database, "category", CategorySchema(keywords=keywords))
            created["categories"] += 1

    if database["plant"].count_documents({}) == 0:
        for name, price, keywords, slug in DEMO_PLANTS:
            ids = resolve_category_ids(database, [Keyword(k) for k in keywords])
            if not ids:
                logger.warning("Skipping %s: none of %s exist", name, keywords)
                continue
            plant = PlantSchema(name=name, price=price, categories=ids, image=f"{IMAGE_BASE}/{slug}.webp")
            create_document(database, "plant", plant)
            created["plants"] += 1

    if database["user"].count_documents({"is_admin": True}) == 0:
        admin = UserSchema(
            name="Admin",
            number="0000000000",
            email=config.ADMIN_EMAIL,
            password_hash=hash_password(config.ADMIN_PASSWORD),
            is_admin=True,
            is_verified=True,
        )
        create_document(database, "user", admin)
        created["admin"] = True
    return created


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logger.info("Seeded: %s", seed(get_db()))
