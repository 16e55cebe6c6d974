import logging
import re

from pymongo import ReturnDocument

from database import create_document, now_utc, parse_object_id, serialize_doc
from errors import NotFoundError, ValidationError
from schemas import CONTACT_STATUSES, ContactBody
from schemas import Contact as ContactSchema

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")


def create_contact(database, body: ContactBody) -> dict:
    name, email, message = body.name.strip(), body.email.strip(), body.message.strip()
    if not name or not email or not message:
        raise ValidationError("Name, email and message are required")
    if not EMAIL_RE.fullmatch(email):
        raise ValidationError("Invalid email")
    contact = ContactSchema(
        name=name,
        email=email.lower(),
        phone=(body.phone or "").strip() or None,
        message=message,
    )
    doc = create_document(database, "contact", contact)
    logger.info("Contact message %s received from %s", doc["_id"], doc["email"])
    out = serialize_doc(doc)
    return {k: out[k] for k in ("id", "name", "email", "phone", "status", "created_at")}


def get_contact(database, contact_id: str) -> dict:
    oid = parse_object_id(contact_id)
    doc = database["contact"].find_one({"_id": oid})
    if not doc:
        raise NotFoundError()
    return serialize_doc(doc)


def set_contact_status(database, contact_id: str, status: str) -> dict:
    oid = parse_object_id(contact_id)
    status = (status or "").strip().lower()
    if status not in CONTACT_STATUSES:
        raise ValidationError("Invalid status value")
    doc = database["contact"].find_one_and_update(
        {"_id": oid},
        {"$set": {"status": status, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError()
    return serialize_doc(doc)


def delete_contact(database, contact_id: str) -> None:
    oid = parse_object_id(contact_id)
    if database["contact"].delete_one({"_id": oid}).deleted_count == 0:
        raise NotFoundError()
