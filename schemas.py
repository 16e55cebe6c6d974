"""
Database Schemas for the EcoBloom plant shop

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Request bodies accepted by the API live at the bottom of the module.
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, EmailStr, Field

TrackingStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
PaymentMethod = Literal["COD", "UPI", "Card", "NetBanking"]
ContactStatus = Literal["new", "resolved", "ignored"]

TRACKING_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_METHODS = ("COD", "UPI", "Card", "NetBanking")
CONTACT_STATUSES = ("new", "resolved", "ignored")


class User(BaseModel):
    name: str = Field(..., description="Full name")
    number: str = Field(..., pattern=r"^[0-9]{10}$", description="10 digit phone number")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    is_admin: bool = False
    is_verified: bool = False
    otp: Optional[str] = Field(None, description="sha256 of the pending OTP")
    otp_expires_at: Optional[datetime] = None


class Category(BaseModel):
    keywords: List[str] = Field(..., min_length=1)


class Plant(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    categories: List[Any] = Field(..., min_length=1, description="Category ObjectIds")
    available: bool = True
    image: Optional[str] = None
    image_key: Optional[str] = None


class OrderItem(BaseModel):
    plant: Any = Field(..., description="Plant ObjectId")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., description="Plant price when the order was placed")


class Address(BaseModel):
    street: str
    city: str
    state: str
    pincode: str
    country: str = "India"


class Order(BaseModel):
    user: Any = Field(..., description="User ObjectId")
    items: List[OrderItem]
    total_amount: float
    status: TrackingStatus = "pending"
    address: Address
    payment_method: PaymentMethod = "COD"
    payment_status: PaymentStatus = "pending"
    delivered_at: Optional[datetime] = None


class Contact(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    status: ContactStatus = "new"


# ----------------------- Request bodies -----------------------
def _number_as_text(value):
    """Phone numbers and pincodes often arrive as JSON numbers."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


NumberText = Annotated[str, BeforeValidator(_number_as_text)]


class RegisterBody(BaseModel):
    name: str
    email: EmailStr
    number: NumberText
    password: str


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class VerifyOtpBody(BaseModel):
    email: EmailStr
    otp: str


class EmailBody(BaseModel):
    email: EmailStr


class ResetPasswordBody(BaseModel):
    email: EmailStr
    otp: str
    new_password: str
    confirm_password: str


class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class ProfileBody(BaseModel):
    name: str = ""
    number: NumberText = ""


class CategoryBody(BaseModel):
    keywords: List[str] = []


class AvailabilityBody(BaseModel):
    available: Any = None


class OrderLineBody(BaseModel):
    plant_id: Optional[str] = Field(None, validation_alias=AliasChoices("plant_id", "plant"))
    quantity: Any = 1


class AddressBody(BaseModel):
    street: Optional[NumberText] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[NumberText] = None
    country: Optional[str] = None


class OrderCreateBody(BaseModel):
    items: List[OrderLineBody] = []
    address: AddressBody = AddressBody()
    payment_method: PaymentMethod = "COD"


class OrderStatusBody(BaseModel):
    status: TrackingStatus
    payment_status: Optional[PaymentStatus] = None


class TrackingStatusBody(BaseModel):
    status: TrackingStatus


class PaymentStatusBody(BaseModel):
    payment_status: PaymentStatus


class ContactBody(BaseModel):
    name: str = ""
    email: str = ""
    phone: Optional[NumberText] = None
    message: str = ""


class ContactStatusBody(BaseModel):
    status: str = ""
