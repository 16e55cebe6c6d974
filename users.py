"""
Account flows: registration with OTP email verification, login, profile and
password management.
"""
import hmac
import logging
import re
from typing import Tuple

from bson.objectid import ObjectId

import config
from database import create_document, now_utc, serialize_doc
from errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from mailer import otp_email
from schemas import ChangePasswordBody, LoginBody, ProfileBody, RegisterBody, ResetPasswordBody
from schemas import User as UserSchema
from security import create_token, generate_otp, hash_otp, hash_password, otp_expired, otp_expiry, verify_password

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"^[0-9]{10}$")
MIN_PASSWORD = 8
PUBLIC_FIELDS = ("id", "name", "email", "number", "is_admin", "is_verified", "created_at")


def public_user(doc: dict) -> dict:
    out = serialize_doc(doc)
    return {k: out.get(k) for k in PUBLIC_FIELDS}


def _find_by_email(database, email: str) -> dict:
    user = database["user"].find_one({"email": email.strip().lower()})
    if not user:
        raise NotFoundError("User not found")
    return user


def _issue_otp(database, user: dict, mailer, subject: str = None) -> None:
    otp = generate_otp(6)
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"otp": hash_otp(otp), "otp_expires_at": otp_expiry(), "updated_at": now_utc()}},
    )
    email_subject, text, html = otp_email(user.get("name"), otp, config.OTP_TTL_MINUTES)
    mailer.send(user["email"], subject or email_subject, text, html)


def _check_otp(user: dict, otp: str) -> None:
    if not user.get("otp") or not user.get("otp_expires_at"):
        raise ValidationError("No OTP pending")
    if otp_expired(user.get("otp_expires_at")):
        raise ValidationError("OTP expired")
    if not hmac.compare_digest(hash_otp(otp), user["otp"]):
        raise ValidationError("Invalid OTP")


def _check_new_password(new_password: str, confirm_password: str) -> None:
    if len(new_password) < MIN_PASSWORD:
        raise ValidationError("Password must be at least 8 characters")
    if new_password != confirm_password:
        raise ValidationError("New password and confirm password do not match")


def register(database, mailer, body: RegisterBody) -> dict:
    name, number = body.name.strip(), body.number.strip()
    email = str(body.email).strip().lower()
    if not name or not number or not body.password:
        raise ValidationError("All fields are required")
    if not NUMBER_RE.match(number):
        raise ValidationError("Enter a valid 10-digit phone number")
    if len(body.password) < MIN_PASSWORD:
        raise ValidationError("Password must be at least 8 characters")
    if database["user"].find_one({"$or": [{"email": email}, {"number": number}]}):
        raise ConflictError("User already exists")

    user = UserSchema(name=name, number=number, email=email, password_hash=hash_password(body.password))
    doc = create_document(database, "user", user)
    try:
        _issue_otp(database, doc, mailer)
    except Exception:
        database["user"].delete_one({"_id": doc["_id"]})
        logger.warning("Registration of %s rolled back: OTP email failed", email)
        raise
    logger.info("User %s registered, OTP sent", doc["_id"])
    return public_user(doc)


def verify_otp(database, email: str, otp: str) -> Tuple[dict, str]:
    user = _find_by_email(database, email)
    _check_otp(user, otp)
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"is_verified": True, "otp": None, "otp_expires_at": None, "updated_at": now_utc()}},
    )
    user["is_verified"] = True
    return public_user(user), create_token(str(user["_id"]), user.get("is_admin", False))


def resend_otp(database, mailer, email: str) -> None:
    user = _find_by_email(database, email)
    if user.get("is_verified"):
        raise ValidationError("Already verified")
    _issue_otp(database, user, mailer)


def login(database, body: LoginBody) -> Tuple[dict, str]:
    user = database["user"].find_one({"email": str(body.email).strip().lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise AuthenticationError("Invalid credentials")
    if not user.get("is_verified"):
        raise AuthorizationError("Please verify your account first")
    return public_user(user), create_token(str(user["_id"]), user.get("is_admin", False))


def get_profile(database, user_id: str) -> dict:
    user = database["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise NotFoundError("User not found")
    return public_user(user)


def update_profile(database, user_id: str, body: ProfileBody) -> dict:
    name, number = body.name.strip(), str(body.number).strip()
    if not name:
        raise ValidationError("Name is required")
    if not NUMBER_RE.match(number):
        raise ValidationError("Enter a valid 10-digit phone number")
    oid = ObjectId(user_id)
    if database["user"].find_one({"number": number, "_id": {"$ne": oid}}):
        raise ConflictError("Phone number already in use")
    result = database["user"].update_one(
        {"_id": oid}, {"$set": {"name": name, "number": number, "updated_at": now_utc()}}
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    return get_profile(database, user_id)


def change_password(database, user_id: str, body: ChangePasswordBody) -> None:
    if not body.current_password or not body.new_password or not body.confirm_password:
        raise ValidationError("Current, new, and confirm password are required")
    _check_new_password(body.new_password, body.confirm_password)
    user = database["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise NotFoundError("User not found")
    if not verify_password(body.current_password, user.get("password_hash", "")):
        raise ValidationError("Current password is incorrect")
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now_utc()}},
    )


def forgot_password(database, mailer, email: str) -> None:
    user = _find_by_email(database, email)
    _issue_otp(database, user, mailer, subject="EcoBloom Password Reset OTP")


def reset_password(database, body: ResetPasswordBody) -> None:
    if not body.otp or not body.new_password or not body.confirm_password:
        raise ValidationError("Email, OTP, new password, and confirm password are required")
    _check_new_password(body.new_password, body.confirm_password)
    user = _find_by_email(database, str(body.email))
    _check_otp(user, body.otp)
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "password_hash": hash_password(body.new_password),
            "otp": None,
            "otp_expires_at": None,
            "updated_at": now_utc(),
        }},
    )
