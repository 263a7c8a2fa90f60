"""
Pydantic request and response models for the OrderKaro API.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


# ============================================================================
# AUTH & PROFILE
# ============================================================================

class RegisterRequest(BaseModel):
    """Sign-up form."""
    name: str
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Asha Verma",
                "email": "asha@orderkaro.in",
                "password": "s3cret-pass"
            }
        }


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str


class PasswordUpdateRequest(BaseModel):
    password: str
    confirm_password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    is_admin: bool


class SessionOut(BaseModel):
    access_token: str
    token_type: str
    user: UserOut


# ============================================================================
# CATALOGUE
# ============================================================================

class CategoryOut(BaseModel):
    id: int
    name: str
    description: str


class ProductCreate(BaseModel):
    """New product (admin)."""
    name: str
    description: str = ""
    price: float = Field(..., gt=0)
    image_url: str = ""
    stock: int = Field(0, ge=0)
    category_id: int

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Fresh Apples",
                "description": "Crisp and juicy red apples",
                "price": 2.99,
                "image_url": "",
                "stock": 100,
                "category_id": 1
            }
        }


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[int] = None


class ProductOut(BaseModel):
    id: int
    name: str
    description: str
    price: float
    image_url: str
    stock: int
    category_id: int
    created_at: Optional[str] = None


# ============================================================================
# CART
# ============================================================================

class CartAddRequest(BaseModel):
    """Cart item request model."""
    product_id: int
    quantity: int = 1


class CartUpdateRequest(BaseModel):
    quantity: int


class CartLineOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: Optional[ProductOut] = None
    line_total: float = 0.0


class CartOut(BaseModel):
    items: List[CartLineOut]
    total: float
    count: int
    items_count: int


# ============================================================================
# ADDRESSES & ORDERS
# ============================================================================

AddressType = Literal["home", "work", "other"]


class AddressCreate(BaseModel):
    address_line: str
    city: str
    state: str
    pincode: str
    type: AddressType = "home"
    is_default: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "address_line": "14 MG Road",
                "city": "Bengaluru",
                "state": "Karnataka",
                "pincode": "560001",
                "type": "home",
                "is_default": True
            }
        }


class AddressUpdate(BaseModel):
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    type: Optional[AddressType] = None
    is_default: Optional[bool] = None


class AddressOut(BaseModel):
    id: int
    user_id: int
    address_line: str
    city: str
    state: str
    pincode: str
    type: str
    is_default: bool


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    price: float
    quantity: int


class OrderOut(BaseModel):
    id: int
    total_price: float
    payment_status: str
    payment_id: Optional[str] = None
    order_status: str
    created_at: str
    address: Optional[AddressOut] = None
    items: List[OrderItemOut]


# ============================================================================
# MISC
# ============================================================================

class NotificationOut(BaseModel):
    id: str
    message: str
    type: str


class MessageOut(BaseModel):
    message: str
