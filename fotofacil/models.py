"""
models.py — Data Models for the FotoFácil Storefront

This module defines the records that flow through the cart, checkout and
delivery components. It uses Pydantic models so that everything read from
client-side storage or from the backend is validated before use.

Models:
    - CartItem: One selected photo in the cart.
    - Coupon / AppliedCoupon: A coupon record and the subset kept after acceptance.
    - CheckoutFormData: Customer identity captured before submission.
    - CreateOrderRequest: Payload of the order-creation endpoint.
    - PaymentData / PaymentStatus: Order-creation and payment-status responses.
    - DeliveryOrder / DeliveryItem / DeliveryBundle: Delivery-validation response.
    - OrderSummary: One row of the "my photos" order lookup.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for records exchanged in camelCase but used in snake_case."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CartItem(WireModel):
    """
    Represents a single purchasable photo held in the cart.

    Attributes:
        photo_id (str): Opaque photo identifier. At most one item per photo_id.
        event_id (str): Event the photo belongs to (display grouping key).
        event_title (str): Display name of the event.
        title (str): Display title of the photo.
        thumb_url (str): Thumbnail reference used for rendering.
        price_cents (int): Price in centavos at the time the photo was added.
    """
    photo_id: str = Field(..., alias="photoId", min_length=1)
    event_id: str = Field("", alias="eventId")
    event_title: str = Field("", alias="eventTitle")
    title: str = ""
    thumb_url: str = Field("", alias="thumbUrl")
    price_cents: int = Field(..., alias="priceCents", ge=0)  # never a float


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(BaseModel):
    """
    A coupon row as stored in the `fotofacil_coupons` table.

    `discount_value` is a percentage for PERCENTAGE coupons and centavos for
    FIXED coupons. The optional limits are ignored when unset.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float = Field(..., ge=0)
    min_order_cents: Optional[int] = None
    min_photos: Optional[int] = None
    max_uses: Optional[int] = None
    current_uses: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class AppliedCoupon(WireModel):
    """The part of a validated coupon retained client-side."""
    id: str
    code: str
    discount_type: DiscountType = Field(..., alias="discountType")
    discount_value: float = Field(..., alias="discountValue")


class CheckoutFormData(BaseModel):
    """Customer identity captured on the checkout step."""
    name: str = ""
    email: str = ""
    cpf: str = ""


class CustomerPayload(BaseModel):
    name: str
    email: str
    cpf: str


class OrderItemPayload(BaseModel):
    photo_id: str
    title: str
    price_cents: int


class CreateOrderRequest(WireModel):
    """
    Payload sent to the order-creation endpoint.

    The prices are the snapshot held by the cart; the order service re-prices
    and re-validates the coupon on its side.
    """
    customer: CustomerPayload
    items: List[OrderItemPayload]
    coupon_id: Optional[str] = Field(None, alias="couponId")


class PaymentData(WireModel):
    """PIX payment instructions returned after the order is created."""
    order_id: str = Field(..., alias="orderId")
    qr_code: str = Field("", alias="qrCode")
    qr_code_base64: str = Field("", alias="qrCodeBase64")
    pix_copia_cola: str = Field("", alias="pixCopiaCola")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")


class PaymentStatus(WireModel):
    status: str
    delivery_token: Optional[str] = Field(None, alias="deliveryToken")

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


class DeliveryPhoto(BaseModel):
    id: str
    url: Optional[str] = None
    thumb_url: Optional[str] = None


class DeliveryItem(BaseModel):
    id: str
    title_snapshot: Optional[str] = None
    photo: Optional[DeliveryPhoto] = None


class DeliveryOrder(BaseModel):
    id: str
    status: str
    delivery_expires_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class DeliveryBundle(BaseModel):
    order: DeliveryOrder
    items: List[DeliveryItem] = []


class OrderSummary(BaseModel):
    """One order as returned by the lookup endpoint."""
    id: str
    status: str
    total_cents: int
    created_at: datetime
    delivery_token: Optional[str] = None
    delivery_expires_at: Optional[datetime] = None
    items_count: int = 0
