import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import DuplicateKeyError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

import admin_queries
import catalog
import config
import contacts
import database
import orders
import users
from database import get_db
from errors import AppError, ValidationError
from mailer import get_mailer
from schemas import (
    AvailabilityBody,
    CategoryBody,
    ChangePasswordBody,
    ContactBody,
    ContactStatusBody,
    EmailBody,
    LoginBody,
    OrderCreateBody,
    OrderStatusBody,
    PaymentStatusBody,
    ProfileBody,
    RegisterBody,
    ResetPasswordBody,
    TrackingStatusBody,
    VerifyOtpBody,
)
from security import TokenUser, clear_session_cookie, get_current_user, require_admin, set_session_cookie
from storage import get_image_store

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("ecobloom")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
    yield


app = FastAPI(title="EcoBloom API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


# ----------------------- Errors -----------------------
def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _fail(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else first.get("msg")
    else:
        message = "Invalid request"
    return _fail(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _fail(exc.status_code, str(exc.detail))


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _fail(409, "Already exists")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _fail(500, "Something went wrong")


# ----------------------- Request helpers -----------------------
@dataclass
class PlantForm:
    fields: Dict[str, Any] = field(default_factory=dict)
    image: Optional[UploadFile] = None


async def plant_form(request: Request) -> PlantForm:
    """Plant payload from a JSON body or a (multipart) form with an optional ``image`` file."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("Invalid JSON body")
        return PlantForm(fields=body)

    form = await request.form()
    parsed = PlantForm()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key == "image" and value.filename:
                parsed.image = value
            continue
        if key in parsed.fields:
            previous = parsed.fields[key]
            parsed.fields[key] = (previous if isinstance(previous, list) else [previous]) + [value]
        else:
            parsed.fields[key] = value
    return parsed


# ----------------------- Health -----------------------
@app.get("/api/health")
def health():
    response = {"ok": True, "service": "EcoBloom API", "database": "Not Connected"}
    try:
        if database.db is not None:
            database.db.command("ping")
            response["database"] = "Connected"
    except Exception as e:
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Users -----------------------
@app.post("/api/users/register", status_code=201)
def register(body: RegisterBody, db=Depends(get_db), mailer=Depends(get_mailer)):
    user = users.register(db, mailer, body)
    return {"success": True, "message": "Registered. OTP sent to email. Please verify to login.", "user": user}


@app.post("/api/users/verify-otp")
def verify_otp(body: VerifyOtpBody, response: Response, db=Depends(get_db)):
    user, token = users.verify_otp(db, str(body.email), body.otp)
    set_session_cookie(response, token)
    return {"success": True, "message": "OTP verified. You are logged in.", "user": user, "token": token}


@app.post("/api/users/resend-otp")
def resend_otp(body: EmailBody, db=Depends(get_db), mailer=Depends(get_mailer)):
    users.resend_otp(db, mailer, str(body.email))
    return {"success": True, "message": "OTP resent to email"}


@app.post("/api/users/login")
def login(body: LoginBody, response: Response, db=Depends(get_db)):
    user, token = users.login(db, body)
    set_session_cookie(response, token)
    return {"success": True, "message": "Logged in", "user": user, "token": token}


@app.post("/api/users/logout")
def logout(response: Response, user: TokenUser = Depends(get_current_user)):
    clear_session_cookie(response)
    return {"success": True, "message": "Logged out successfully"}


@app.get("/api/users/me")
def me(user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "user": users.get_profile(db, user.id)}


@app.put("/api/users/me")
def update_me(body: ProfileBody, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "message": "Profile updated", "user": users.update_profile(db, user.id, body)}


@app.patch("/api/users/change-password")
def change_password(body: ChangePasswordBody, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    users.change_password(db, user.id, body)
    return {"success": True, "message": "Password updated successfully"}


@app.post("/api/users/forgot-password")
def forgot_password(body: EmailBody, db=Depends(get_db), mailer=Depends(get_mailer)):
    users.forgot_password(db, mailer, str(body.email))
    return {"success": True, "message": "Password reset OTP sent to email"}


@app.post("/api/users/reset-password")
def reset_password(body: ResetPasswordBody, db=Depends(get_db)):
    users.reset_password(db, body)
    return {"success": True, "message": "Password reset successful. Please log in."}


# ----------------------- Categories -----------------------
@app.get("/api/categories")
def list_categories(db=Depends(get_db)):
    return {"success": True, "categories": catalog.list_categories(db)}


@app.post("/api/categories", status_code=201)
def create_category(body: CategoryBody, user=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, "category": catalog.create_category(db, body.keywords)}


@app.put("/api/categories/{category_id}")
def replace_category(category_id: str, body: CategoryBody, user=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, "category": catalog.replace_category(db, category_id, body.keywords)}


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, user=Depends(require_admin), db=Depends(get_db)):
    catalog.delete_category(db, category_id)
    return {"success": True, "message": "Category deleted"}


# ----------------------- Plants -----------------------
@app.get("/api/plants")
def list_plants(search: str = "", category: str = "", category_id: str = "", available: str = "",
                page: str = "1", limit: str = "12", db=Depends(get_db)):
    result = catalog.list_plants(db, search, category, category_id, available, page, limit)
    return {"success": True, **result}


@app.get("/api/plants/category/{category_id}")
def plants_by_category(category_id: str, db=Depends(get_db)):
    return {"success": True, "plants": catalog.list_plants_by_category(db, category_id)}


@app.get("/api/plants/{plant_id}")
def get_plant(plant_id: str, db=Depends(get_db)):
    return {"success": True, "plant": catalog.get_plant(db, plant_id)}


@app.post("/api/plants", status_code=201)
def create_plant(form: PlantForm = Depends(plant_form), user=Depends(require_admin),
                 db=Depends(get_db), store=Depends(get_image_store)):
    plant = catalog.create_plant(db, store, form.fields, form.image)
    return {"success": True, "message": "Plant created", "plant": plant}


@app.put("/api/plants/{plant_id}")
def update_plant(plant_id: str, form: PlantForm = Depends(plant_form), user=Depends(require_admin),
                 db=Depends(get_db), store=Depends(get_image_store)):
    plant = catalog.update_plant(db, store, plant_id, form.fields, form.image)
    return {"success": True, "message": "Plant updated successfully", "plant": plant}


@app.patch("/api/plants/{plant_id}/availability")
def update_availability(plant_id: str, body: AvailabilityBody, user=Depends(require_admin), db=Depends(get_db)):
    plant = catalog.set_availability(db, plant_id, body.available)
    return {"success": True, "message": "Availability updated", "plant": plant}


@app.delete("/api/plants/{plant_id}")
def delete_plant(plant_id: str, user=Depends(require_admin), db=Depends(get_db), store=Depends(get_image_store)):
    catalog.delete_plant(db, store, plant_id)
    return {"success": True, "message": "Plant deleted"}


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "message": "Order created", "order": orders.create_order(db, user, body)}


@app.get("/api/orders/me")
def my_orders(status: str = "", page: str = "1", limit: str = "20",
              user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, **orders.list_my_orders(db, user, status, page, limit)}


@app.get("/api/orders")
def all_orders(status: str = "", user_id: str = "", page: str = "1", limit: str = "20",
               user=Depends(require_admin), db=Depends(get_db)):
    result = admin_queries.search_orders(db, status=status, user_id=user_id, page=page, limit=limit)
    return {"success": True, **result}


@app.get("/api/orders/admin/orders")
def admin_list_orders(q: str = "", status: str = "", payment_status: str = "", payment_method: str = "",
                      user_id: str = "", page: str = "1", limit: str = "10",
                      user=Depends(require_admin), db=Depends(get_db)):
    result = admin_queries.search_orders(db, q, status, payment_status, payment_method, user_id, page, limit)
    return {"success": True, **result}


@app.get("/api/orders/admin/stats/overview")
def order_stats(user=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, **admin_queries.order_stats(db)}


@app.patch("/api/orders/admin/orders/{order_id}")
def admin_update_payment_status(order_id: str, body: PaymentStatusBody, user=Depends(require_admin),
                                db=Depends(get_db)):
    order = orders.set_payment_status(db, order_id, body.payment_status)
    return {"success": True, "message": "Payment status updated", "order": order}


@app.patch("/api/orders/admin/orders/{order_id}/status")
def admin_update_tracking_status(order_id: str, body: TrackingStatusBody, user=Depends(require_admin),
                                 db=Depends(get_db)):
    order = orders.set_tracking_status(db, order_id, body.status)
    return {"success": True, "message": f"Order status updated to {body.status}", "order": order}


@app.delete("/api/orders/admin/orders/{order_id}")
def admin_delete_order(order_id: str, user=Depends(require_admin), db=Depends(get_db)):
    orders.delete_order(db, order_id)
    return {"success": True, "message": "Order deleted"}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "order": orders.get_order(db, order_id, user)}


@app.get("/api/orders/{order_id}/payment-status")
def get_payment_status(order_id: str, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, **orders.get_payment_status(db, order_id, user)}


@app.patch("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: TokenUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "message": "Order cancelled", "order": orders.cancel_order(db, order_id, user)}


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: OrderStatusBody, user=Depends(require_admin), db=Depends(get_db)):
    order = orders.set_tracking_status(db, order_id, body.status, body.payment_status)
    return {"success": True, "message": "Order status updated", "order": order}


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, user=Depends(require_admin), db=Depends(get_db)):
    orders.delete_order(db, order_id)
    return {"success": True, "message": "Order deleted"}


# ----------------------- Contacts -----------------------
@app.post("/api/contacts", status_code=201)
def create_contact(body: ContactBody, db=Depends(get_db)):
    contact = contacts.create_contact(db, body)
    return {"success": True, "message": "Thanks! We received your message.", "contact": contact}


@app.get("/api/contacts/admin")
def admin_list_contacts(q: str = "", status: str = "", page: str = "1", limit: str = "10",
                        user=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, **admin_queries.search_contacts(db, q, status, page, limit)}


@app.get("/api/contacts/admin/{contact_id}")
def admin_get_contact(contact_id: str, user=Depends(require_admin), db=Depends(get_db)):
    return {"success": True, "contact": contacts.get_contact(db, contact_id)}


@app.patch("/api/contacts/admin/{contact_id}/status")
def admin_update_contact_status(contact_id: str, body: ContactStatusBody, user=Depends(require_admin),
                                db=Depends(get_db)):
    contact = contacts.set_contact_status(db, contact_id, body.status)
    return {"success": True, "message": "Status updated", "contact": contact}


@app.delete("/api/contacts/admin/{contact_id}")
def admin_delete_contact(contact_id: str, user=Depends(require_admin), db=Depends(get_db)):
    contacts.delete_contact(db, contact_id)
    return {"success": True, "message": "Deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
