"""
Database Schemas and request shapes for the shop orders API

Each collection model represents a MongoDB collection. The collection name is
the lowercase of the class name:

- Shop -> "shop"
- Product -> "product"
- Order -> "order"

Customer documents in "customer" are written only by customers.upsert_customer.

Request models use camelCase on the wire and snake_case in Python. They trim
strings, coerce numeric strings and drop unknown fields.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from validation import (
    OBJECT_ID_MESSAGE,
    check_address,
    check_name,
    check_object_id,
    check_phone,
    is_object_id,
)

DEFAULT_TIMEZONE = "Europe/Kyiv"
DEFAULT_PRODUCT_IMAGE = "https://placehold.co/600x400"

ObjectIdStr = Annotated[str, AfterValidator(check_object_id)]
Phone = Annotated[str, AfterValidator(check_phone)]
Address = Annotated[str, AfterValidator(check_address)]
PersonName = Annotated[str, AfterValidator(check_name)]
Cents = Annotated[int, Field(ge=0, strict=True)]


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class Shop(BaseModel):
    name: str = Field(..., min_length=1, description="Shop display name")
    address: str = Field(..., min_length=1, description="Shop address")


class Product(BaseModel):
    shop_id: str = Field(..., description="Owning shop ObjectId as string")
    name: str = Field(..., min_length=1, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price_cents: Cents = Field(..., description="Price in minor currency units")
    image_url: str = Field(DEFAULT_PRODUCT_IMAGE, description="Display image URL")
    is_bouquet: bool = Field(False, description="Bouquet/bundle flag")

    @field_validator("shop_id")
    @classmethod
    def _shop_id_format(cls, v: str) -> str:
        return check_object_id(v)


class OrderCustomer(BaseModel):
    """Customer snapshot embedded in an order at placement time."""

    name: Optional[str] = None
    email: str
    phone: str
    timezone: str = DEFAULT_TIMEZONE


class Delivery(BaseModel):
    address: str


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Referenced product id")
    name: str = Field(..., description="Product name at order time")
    qty: int = Field(..., ge=1)
    price_cents: Cents = Field(..., description="Unit price at order time")


class Order(BaseModel):
    customer: OrderCustomer
    shop_id: str
    delivery: Delivery
    items: List[OrderItem] = Field(..., min_length=1)
    total_cents: Cents
    status: str = Field("created", description="Order status")
    client_created_at: Optional[str] = None
    customer_time_zone: Optional[str] = None
    customer_offset_minutes: Optional[int] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def _check_id_or_ids(value: Union[str, List[str]]) -> Union[str, List[str]]:
    if isinstance(value, list):
        if not all(is_object_id(v) for v in value):
            raise ValueError(f"every entry {OBJECT_ID_MESSAGE}")
        return [v.lower() for v in value]
    return check_object_id(value)


def _check_iso_timestamp(value: str) -> str:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("must be an ISO 8601 timestamp")
    return value


class CartLine(RequestModel):
    product_id: ObjectIdStr
    qty: int = Field(..., gt=0, validation_alias=AliasChoices("qty", "quantity"))


class PlaceOrderRequest(RequestModel):
    name: Optional[PersonName] = None
    email: EmailStr
    phone: Phone
    address: Address
    shop_id: Union[str, List[str]]
    items: List[CartLine] = Field(..., min_length=1)
    customer_timezone: Optional[str] = None
    client_created_at: Optional[Annotated[str, AfterValidator(_check_iso_timestamp)]] = None
    customer_offset_minutes: Optional[int] = None

    @field_validator("shop_id")
    @classmethod
    def _shop_id_format(cls, v):
        return _check_id_or_ids(v)


class BulkInfoRequest(RequestModel):
    order_ids: Union[str, List[str]]

    @field_validator("order_ids")
    @classmethod
    def _order_ids_format(cls, v):
        if isinstance(v, list) and not v:
            raise ValueError("at least one order id is required")
        return _check_id_or_ids(v)

    def id_list(self) -> List[str]:
        return self.order_ids if isinstance(self.order_ids, list) else [self.order_ids]


class PrefillRequest(RequestModel):
    email: EmailStr
    phone: Phone


class ProductsQuery(RequestModel):
    sort: Literal["price", "date"] = "date"
    order: Literal["asc", "desc"] = "desc"
