# storefront/db/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Requests

class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CartItemCreate(BaseModel):
    product_id: Optional[int] = None
    productId: Optional[int] = None
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: int


class CheckoutRequest(BaseModel):
    paymentMethod: str = "paypal"
    paypalOrderId: Optional[str] = None
    mpesaTransactionId: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[str] = None


class PaypalCreateOrder(BaseModel):
    amount: float
    currency: str = "USD"
    orderId: Optional[int] = None
    description: Optional[str] = None


class PaypalCapture(BaseModel):
    paypalOrderId: str
    orderId: int


class PaypalProcess(BaseModel):
    orderId: int
    paypalOrderId: str


class MpesaInitiate(BaseModel):
    phoneNumber: str
    amount: float
    orderId: int


class MpesaVerify(BaseModel):
    checkoutRequestId: str


class MpesaProcess(BaseModel):
    orderId: int
    phoneNumber: Optional[str] = None
    mpesaTransactionId: Optional[str] = None


class ReviewCreate(BaseModel):
    rating: Any = None
    comment: Optional[str] = None


class TicketCreate(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None


class TicketUpdate(BaseModel):
    status: str
    note: Optional[str] = None


class SuggestionRequest(BaseModel):
    text: str = ""


class SellerCreate(BaseModel):
    name: Optional[str] = None
    contact_email: Optional[str] = None
    webhook_url: Optional[str] = None
    status: str = "active"


class SellerUpdate(BaseModel):
    name: Optional[str] = None
    contact_email: Optional[str] = None
    webhook_url: Optional[str] = None
    status: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    order_status: str


class ChatRequest(BaseModel):
    message: Optional[str] = None
    sessionId: Optional[str] = None


class ChatTicketCreate(BaseModel):
    sessionId: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None


# Responses

class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    email_verified: bool
    phone: Optional[str] = None
    address: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    price: float
    images: Optional[List[str]] = None
    attributes: Optional[Dict[str, Any]] = None
    external_id: Optional[str] = None
    featured: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VariantResponse(BaseModel):
    id: int
    sku: Optional[str] = None
    barcode: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    price_cents: int
    compare_at_price_cents: Optional[int] = None
    currency: str

    model_config = ConfigDict(from_attributes=True)


class InventoryResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    stock_quantity: int
    safety_stock: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class CartItemResponse(BaseModel):
    id: int
    user_id: int
    product_id: int
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price_at_purchase: float

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    amount: float
    currency: str
    payment_method: str
    payment_status: str
    transaction_id: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: int
    user_id: int
    total_amount: float
    currency: str
    order_status: str
    shipping_address: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReviewResponse(BaseModel):
    id: int
    user_id: int
    product_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TicketHistoryResponse(BaseModel):
    id: int
    status: str
    note: Optional[str] = None
    updated_by: Optional[int] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketResponse(BaseModel):
    id: str
    user_id: int
    subject: str
    description: str
    category: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SellerResponse(BaseModel):
    id: int
    name: str
    contact_email: str
    webhook_url: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class IngestionJobResponse(BaseModel):
    id: int
    type: str
    status: str
    stats: Optional[Dict[str, Any]] = None
    file_path: Optional[str] = None
    seller_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class IngestionEventResponse(BaseModel):
    id: int
    level: str
    code: Optional[str] = None
    message: str
    payload: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatMessageResponse(BaseModel):
    role: str
    content: str
    created_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(from_attributes=True)
