from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PresentationType(str, enum.Enum):
    BOX = "box"
    UNIT = "unit"
    SIXPACK = "sixpack"


# -------------------------
# Rows as stored remotely
# -------------------------
class ProductPrice(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, allow_inf_nan=False)

    id: Optional[str] = None
    product_id: Optional[str] = None
    purchase_price_box: float = Field(default=0, ge=0)
    purchase_price_unit: float = Field(default=0, ge=0)
    sale_price_box: float = Field(default=0, ge=0)
    sale_price_unit: float = Field(default=0, ge=0)


class ProductImage(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    product_id: Optional[str] = None
    image_url: str
    is_primary: bool = False
    sort_order: int = Field(default=0, ge=0)


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    name: str
    presentation_type: PresentationType
    units_per_presentation: int = Field(default=0, ge=0)
    is_active: bool = True
    reorder_level: int = Field(default=0, ge=0)
    reorder_quantity: int = Field(default=0, ge=0)
    product_prices: Optional[ProductPrice] = None
    product_images: List[ProductImage] = Field(default_factory=list)

    @field_validator("product_prices", mode="before")
    @classmethod
    def _one_price(cls, v: Any) -> Any:
        # PostgREST embeds a one-to-one relation as an object when the FK is
        # unique, and as a list otherwise.
        if isinstance(v, list):
            return v[0] if v else None
        return v

    @field_validator("product_images", mode="before")
    @classmethod
    def _images_list(cls, v: Any) -> Any:
        return v or []


# -------------------------
# Form input
# -------------------------
class PriceDraft(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    purchase_price_box: float = Field(ge=0)
    purchase_price_unit: float = Field(ge=0)
    sale_price_box: float = Field(ge=0)
    sale_price_unit: float = Field(ge=0)


class ProductDraft(BaseModel):
    """What the product form submits, after validation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=255)
    presentation_type: PresentationType
    units_per_presentation: int = Field(ge=0)
    # None means "not submitted": new products start active, edits keep the
    # stored flag.
    is_active: Optional[bool] = None
    reorder_level: int = Field(default=0, ge=0)
    reorder_quantity: int = Field(ge=0)
    product_price_id: Optional[str] = None
    product_prices: PriceDraft

    @field_validator("id", "product_price_id", mode="before")
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class PendingImage(BaseModel):
    """An uploaded image not yet attributed to a persisted product row."""

    product_id: Optional[str] = None
    image_url: str
    is_primary: bool
    sort_order: int = Field(ge=0)


# -------------------------
# Stored procedure payloads
# -------------------------
class ProcedureImage(BaseModel):
    image_url: str
    is_primary: bool
    sort_order: int


class CreateProductParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="_name")
    presentation_type: PresentationType = Field(alias="_presentation_type")
    units_per_presentation: int = Field(alias="_units_per_presentation")
    is_active: bool = Field(alias="_is_active")
    reorder_level: int = Field(alias="_reorder_level")
    reorder_quantity: int = Field(alias="_reorder_quantity")
    purchase_price_box: float = Field(alias="_purchase_price_box")
    purchase_price_unit: float = Field(alias="_purchase_price_unit")
    sale_price_box: float = Field(alias="_sale_price_box")
    sale_price_unit: float = Field(alias="_sale_price_unit")
    product_images: List[ProcedureImage] = Field(default_factory=list, alias="_product_images")

    @classmethod
    def from_draft(cls, draft: ProductDraft, images: List[PendingImage]) -> "CreateProductParams":
        prices = draft.product_prices
        return cls(
            name=draft.name,
            presentation_type=draft.presentation_type,
            units_per_presentation=draft.units_per_presentation,
            is_active=True if draft.is_active is None else draft.is_active,
            reorder_level=draft.reorder_level,
            reorder_quantity=draft.reorder_quantity,
            purchase_price_box=prices.purchase_price_box,
            purchase_price_unit=prices.purchase_price_unit,
            sale_price_box=prices.sale_price_box,
            sale_price_unit=prices.sale_price_unit,
            product_images=[
                ProcedureImage(image_url=i.image_url, is_primary=i.is_primary, sort_order=i.sort_order)
                for i in images
            ],
        )

    def to_rpc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class UpdateProductParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id", min_length=1)
    is_active: bool = Field(alias="_is_active")
    name: str = Field(alias="_name")
    presentation_type: PresentationType = Field(alias="_presentation_type")
    product_price_id: str = Field(alias="_product_price_id", min_length=1)
    purchase_price_box: float = Field(alias="_purchase_price_box")
    purchase_price_unit: float = Field(alias="_purchase_price_unit")
    reorder_quantity: int = Field(alias="_reorder_quantity")
    sale_price_box: float = Field(alias="_sale_price_box")
    sale_price_unit: float = Field(alias="_sale_price_unit")
    units_per_presentation: int = Field(alias="_units_per_presentation")

    @classmethod
    def from_draft(cls, draft: ProductDraft) -> "UpdateProductParams":
        prices = draft.product_prices
        return cls(
            id=draft.id or "",
            is_active=bool(draft.is_active),
            name=draft.name,
            presentation_type=draft.presentation_type,
            product_price_id=draft.product_price_id or "",
            purchase_price_box=prices.purchase_price_box,
            purchase_price_unit=prices.purchase_price_unit,
            reorder_quantity=draft.reorder_quantity,
            sale_price_box=prices.sale_price_box,
            sale_price_unit=prices.sale_price_unit,
            units_per_presentation=draft.units_per_presentation,
        )

    def to_rpc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -------------------------
# Table view
# -------------------------
class ProductRow(BaseModel):
    id: Optional[str] = None
    name: str
    presentation_type: PresentationType
    units_per_presentation: int
    is_active: bool
    purchase_price_box: Optional[float] = None
    purchase_price_unit: Optional[float] = None
    sale_price_box: Optional[float] = None
    sale_price_unit: Optional[float] = None
    primary_image: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductRow":
        prices = product.product_prices
        primary = next((i for i in product.product_images if i.is_primary), None)
        if primary is None and product.product_images:
            primary = min(product.product_images, key=lambda i: i.sort_order)
        return cls(
            id=product.id,
            name=product.name,
            presentation_type=product.presentation_type,
            units_per_presentation=product.units_per_presentation,
            is_active=product.is_active,
            purchase_price_box=prices.purchase_price_box if prices else None,
            purchase_price_unit=prices.purchase_price_unit if prices else None,
            sale_price_box=prices.sale_price_box if prices else None,
            sale_price_unit=prices.sale_price_unit if prices else None,
            primary_image=primary.image_url if primary else None,
        )


# -------------------------
# Account
# -------------------------
class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    full_name: Optional[str] = None
    username: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class AccountForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    fullname: str = Field(min_length=5, max_length=32)
    username: str = Field(min_length=5, max_length=20)
    website: str = Field(min_length=5, max_length=32)
    avatar_url: str = ""
