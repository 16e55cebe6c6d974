"""
Catalog store: plants and the categories they are tagged with.
"""
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional

from bson.objectid import ObjectId
from pymongo import ReturnDocument

from category_resolver import (
    SUBSTRING,
    DirectId,
    Keyword,
    has_category_input,
    normalize_category_input,
    require_category_ids,
    resolve_category_ids,
)
from database import (
    DEFAULT_SORT,
    create_document,
    get_documents,
    is_object_id,
    now_utc,
    paginate,
    parse_object_id,
    parse_pagination,
    serialize_doc,
)
from errors import ConflictError, NotFoundError, ValidationError
from schemas import Category as CategorySchema
from schemas import Plant as PlantSchema

logger = logging.getLogger(__name__)

PLANT_PAGE_DEFAULT = 12
PLANT_PAGE_MAX = 60
LISTED_CATEGORY_NAMES = 3


def parse_bool(value: Any) -> Optional[bool]:
    """True/False for booleans and "true"/"false" strings, None for anything else."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def parse_price(value: Any) -> float:
    try:
        price = float(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number")
    if math.isnan(price) or math.isinf(price) or price <= 0:
        raise ValidationError("Price must be greater than 0")
    return price


def populate_categories(database, plants: List[dict], name_limit: Optional[int] = None) -> List[dict]:
    """Swap category ids for ``{_id, keywords}`` and attach ``category_names``."""
    wanted = {cid for p in plants for cid in p.get("categories") or []}
    by_id = {}
    if wanted:
        for cat in database["category"].find({"_id": {"$in": list(wanted)}}, {"keywords": 1}):
            by_id[cat["_id"]] = cat
    for plant in plants:
        cats = [by_id[cid] for cid in plant.get("categories") or [] if cid in by_id]
        names = [k for c in cats for k in c.get("keywords") or []]
        plant["categories"] = cats
        plant["category_names"] = names[:name_limit] if name_limit else names
    return plants


# ----------------------- Categories -----------------------
def _clean_keywords(keywords) -> List[str]:
    if not isinstance(keywords, list):
        raise ValidationError("keywords array required")
    cleaned = [str(k).strip() for k in keywords if str(k).strip()]
    if not cleaned:
        raise ValidationError("keywords array required")
    return cleaned


def list_categories(database) -> List[dict]:
    return serialize_doc(get_documents(database, "category", sort=[("created_at", 1), ("_id", 1)]))


def _ensure_keywords_free(database, keywords: List[str], category_id: Optional[ObjectId] = None) -> None:
    """Every keyword belongs to at most one category (the unique index on ``keywords`` is multikey)."""
    filt: Dict[str, Any] = {"keywords": {"$in": keywords}}
    if category_id is not None:
        filt["_id"] = {"$ne": category_id}
    if database["category"].find_one(filt, {"_id": 1}):
        raise ConflictError("Category keyword already exists")


def create_category(database, keywords) -> dict:
    cleaned = _clean_keywords(keywords)
    _ensure_keywords_free(database, cleaned)
    category = CategorySchema(keywords=cleaned)
    doc = create_document(database, "category", category)
    logger.info("Category %s created with keywords %s", doc["_id"], doc["keywords"])
    return serialize_doc(doc)


def replace_category(database, category_id: str, keywords) -> dict:
    oid = parse_object_id(category_id)
    cleaned = _clean_keywords(keywords)
    _ensure_keywords_free(database, cleaned, oid)
    doc = database["category"].find_one_and_update(
        {"_id": oid},
        {"$set": {"keywords": cleaned, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Category not found")
    return serialize_doc(doc)


def delete_category(database, category_id: str) -> None:
    # plants keep dangling references; populate simply skips them
    oid = parse_object_id(category_id)
    result = database["category"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Category not found")
    logger.info("Category %s deleted", oid)


# ----------------------- Plants: reads -----------------------
NO_MATCH = object()


def _category_filter(database, category: str, category_id: str):
    """A ``categories`` filter value, None for no constraint, NO_MATCH when nothing can match."""
    if category_id and is_object_id(category_id):
        return ObjectId(category_id)
    category = (category or "").strip()
    if not category:
        return None
    tokens = [DirectId(ObjectId(category))] if is_object_id(category) else [Keyword(category)]
    ids = resolve_category_ids(database, tokens, SUBSTRING)
    if not ids:
        return NO_MATCH
    return {"$in": ids}


def list_plants(database, search: str = "", category: str = "", category_id: str = "",
                available: str = "", page=1, limit=PLANT_PAGE_DEFAULT) -> Dict[str, Any]:
    page, limit = parse_pagination(page, limit, PLANT_PAGE_DEFAULT, PLANT_PAGE_MAX)
    filt: Dict[str, Any] = {}

    search = (search or "").strip()
    if search:
        filt["name"] = {"$regex": re.escape(search), "$options": "i"}

    flag = parse_bool(available)
    if flag is not None:
        filt["available"] = flag

    cat_filter = _category_filter(database, category, category_id)
    if cat_filter is NO_MATCH:
        return {"plants": [], "total": 0, "page": page, "limit": limit}
    if cat_filter is not None:
        filt["categories"] = cat_filter

    plants, total = paginate(database["plant"], filt, page, limit)
    populate_categories(database, plants, LISTED_CATEGORY_NAMES)
    return {"plants": serialize_doc(plants), "total": total, "page": page, "limit": limit}


def _load_plant(database, plant_id: str) -> dict:
    oid = parse_object_id(plant_id, "plant id")
    plant = database["plant"].find_one({"_id": oid})
    if not plant:
        raise NotFoundError("Plant not found")
    return plant


def get_plant(database, plant_id: str) -> dict:
    plant = _load_plant(database, plant_id)
    populate_categories(database, [plant])
    return serialize_doc(plant)


def list_plants_by_category(database, category_id: str) -> List[dict]:
    oid = parse_object_id(category_id, "category id")
    plants = list(database["plant"].find({"categories": oid}).sort(DEFAULT_SORT))
    populate_categories(database, plants)
    return serialize_doc(plants)


# ----------------------- Plants: writes -----------------------
def _store_upload(store, upload) -> Optional[Dict[str, str]]:
    if upload is None:
        return None
    stored = store.save(upload.content_type, upload.file.read())
    return {"image": stored.url, "image_key": stored.key}


def _image_fields(store, payload: Mapping[str, Any], upload) -> Optional[Dict[str, Any]]:
    stored = _store_upload(store, upload)
    if stored:
        return stored
    image = payload.get("image")
    if isinstance(image, str) and image.strip():
        return {"image": image.strip(), "image_key": None}
    return None


def _discard_image(store, key: str, plant_id) -> None:
    try:
        store.delete(key)
    except Exception as exc:
        # orphaned files are tolerated
        logger.warning("Could not delete image %s of plant %s: %s", key, plant_id, exc)


def create_plant(database, store, payload: Mapping[str, Any], upload=None) -> dict:
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name & price required")
    if payload.get("price") in (None, ""):
        raise ValidationError("Name & price required")
    price = parse_price(payload.get("price"))
    category_ids = require_category_ids(database, payload)

    image = _image_fields(store, payload, upload) or {"image": None, "image_key": None}
    plant = PlantSchema(
        name=name.strip(),
        price=price,
        categories=category_ids,
        available=parse_bool(payload.get("available")) is not False,
        **image,
    )
    doc = create_document(database, "plant", plant)
    logger.info("Plant %s created (%s)", doc["_id"], doc["name"])
    populate_categories(database, [doc])
    return serialize_doc(doc)


def update_plant(database, store, plant_id: str, payload: Mapping[str, Any], upload=None) -> dict:
    oid = parse_object_id(plant_id, "plant id")
    update: Dict[str, Any] = {}

    name = payload.get("name")
    if isinstance(name, str) and name.strip():
        update["name"] = name.strip()
    if payload.get("price") not in (None, ""):
        update["price"] = parse_price(payload.get("price"))
    if "available" in payload:
        update["available"] = parse_bool(payload.get("available")) is True
    if has_category_input(payload) and normalize_category_input(payload):
        # replaces the whole list, no merge
        update["categories"] = require_category_ids(database, payload)
    if upload is not None and not database["plant"].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("Plant not found")
    image = _image_fields(store, payload, upload)
    if image:
        update.update(image)

    update["updated_at"] = now_utc()
    previous = database["plant"].find_one_and_update({"_id": oid}, {"$set": update})
    if not previous:
        raise NotFoundError("Plant not found")
    if image and previous.get("image_key") and previous["image_key"] != image.get("image_key"):
        _discard_image(store, previous["image_key"], oid)
    doc = {**previous, **update}
    populate_categories(database, [doc])
    return serialize_doc(doc)


def set_availability(database, plant_id: str, available: Any) -> dict:
    oid = parse_object_id(plant_id, "plant id")
    flag = parse_bool(available)
    if flag is None:
        raise ValidationError("available is required")
    doc = database["plant"].find_one_and_update(
        {"_id": oid},
        {"$set": {"available": flag, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Plant not found")
    populate_categories(database, [doc])
    return serialize_doc(doc)


def delete_plant(database, store, plant_id: str) -> None:
    plant = _load_plant(database, plant_id)
    if plant.get("image_key"):
        _discard_image(store, plant["image_key"], plant["_id"])
    database["plant"].delete_one({"_id": plant["_id"]})
    logger.info("Plant %s deleted", plant["_id"])
