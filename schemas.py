"""
Database Schemas for the phone store

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name. Review lives
inside Product, OrderItem inside Order.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    country: Optional[str] = None


class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr
    password: str = Field(..., description="Hashed password")
    role: Literal["user", "admin"] = "user"
    avatar: str = ""
    phone: str = ""
    address: Address = Field(default_factory=Address)


class Specs(BaseModel):
    display: Optional[str] = None
    processor: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    battery: Optional[str] = None
    camera: Optional[str] = None
    os: Optional[str] = None
    color: List[str] = []


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    category: str = "Smartphone"
    description: str
    price: float = Field(0, ge=0)
    originalPrice: float = Field(0, ge=0)
    discount: float = 0
    images: List[str] = []
    mobileImages: List[str] = []
    outOfStock: bool = False
    countInStock: int = Field(0, ge=0)
    specs: Specs = Field(default_factory=Specs)
    tags: List[str] = []
    isFeatured: bool = False
    isNewArrival: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    originalPrice: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = None
    images: Optional[List[str]] = None
    mobileImages: Optional[List[str]] = None
    outOfStock: Optional[bool] = None
    countInStock: Optional[int] = Field(None, ge=0)
    specs: Optional[Specs] = None
    tags: Optional[List[str]] = None
    isFeatured: Optional[bool] = None
    isNewArrival: Optional[bool] = None


class ReviewBody(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    product: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)


class ShippingAddress(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    postalCode: Optional[str] = None
    country: Optional[str] = None


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    email_address: Optional[str] = None


class Order(BaseModel):
    orderItems: List[OrderItem] = []
    shippingAddress: ShippingAddress = Field(default_factory=ShippingAddress)
    paymentMethod: str = "Cash on Delivery"
    paymentResult: Optional[PaymentResult] = None
    itemsPrice: float = Field(0, ge=0)
    shippingPrice: float = Field(0, ge=0)
    taxPrice: float = Field(0, ge=0)
    totalPrice: float = Field(0, ge=0)


class StatusBody(BaseModel):
    status: OrderStatus
