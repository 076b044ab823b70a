from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Sequence

from pydantic import ValidationError

from backoffice.core.config import settings
from backoffice.core.errors import ErrorKind, Failure, Ok, RemoteError, Result
from backoffice.core.logging import get_logger, log_remote_failure
from backoffice.core.remote import SupabaseClient
from backoffice.schemas import (
    CreateProductParams,
    PendingImage,
    Product,
    ProductDraft,
    ProductImage,
    Profile,
    UpdateProductParams,
)

logger = get_logger(__name__)

PRODUCT_COLUMNS = """
    *,
    product_prices (*),
    product_images (*)
"""

PROFILE_COLUMNS = "id, full_name, username, website, avatar_url, updated_at"


def _failure(error: Exception, action: str, message: str) -> Failure:
    """Turn anything raised during a remote call into a Failure, logging the cause."""
    if isinstance(error, RemoteError):
        log_remote_failure(logger, error, action)
        return Failure(error.kind, message)
    if isinstance(error, ValidationError):
        logger.error("unexpected row shape while %s: %s", action, error)
        return Failure(ErrorKind.UNKNOWN, message)
    logger.exception("unexpected error while %s: %s", action, error)
    return Failure(ErrorKind.UNKNOWN, message)


def _first_row(data: Any) -> Any:
    # RPCs returning SETOF give a list; scalar composite returns give an object.
    if isinstance(data, list):
        return data[0] if data else None
    return data


# -------------------------
# Products
# -------------------------
async def list_products(client: SupabaseClient) -> Result[List[Product]]:
    try:
        rows = await client.select(settings.products_table, PRODUCT_COLUMNS)
        return Ok([Product.model_validate(r) for r in rows or []])
    except Exception as e:  # noqa: BLE001
        return _failure(e, "listing products", "Could not fetch products")


async def get_product(client: SupabaseClient, product_id: str) -> Result[Product]:
    try:
        row = await client.select(
            settings.products_table,
            PRODUCT_COLUMNS,
            {"id": product_id},
            single=True,
        )
        if not row:
            return Failure(ErrorKind.NOT_FOUND, "Product not found")
        return Ok(Product.model_validate(row))
    except RemoteError as e:
        if e.kind is ErrorKind.NOT_FOUND:
            logger.info("product %s not found", product_id)
            return Failure(ErrorKind.NOT_FOUND, "Product not found")
        return _failure(e, f"fetching product {product_id}", "Could not fetch product")
    except Exception as e:  # noqa: BLE001
        return _failure(e, f"fetching product {product_id}", "Could not fetch product")


async def create_product(
    client: SupabaseClient,
    draft: ProductDraft,
    images: Sequence[PendingImage] = (),
) -> Result[Product]:
    """
    Create the product, its price row and any image rows in one procedure call.
    """
    params = CreateProductParams.from_draft(draft, list(images))
    try:
        created = _first_row(await client.rpc(settings.create_product_rpc, params.to_rpc()))
        if not created:
            return Failure(ErrorKind.NOT_FOUND, "Created product was not returned")
        return Ok(Product.model_validate(created))
    except Exception as e:  # noqa: BLE001
        return _failure(e, "creating product", "Could not create product")


async def update_product(client: SupabaseClient, draft: ProductDraft) -> Result[Product]:
    """
    Update core and price fields. Images are not part of this call; see
    sync_product_images.
    """
    if not draft.id:
        return Failure(ErrorKind.VALIDATION, "Product id is required for update")
    if draft.product_price_id is None or draft.is_active is None:
        return Failure(ErrorKind.VALIDATION, "Price row id and active flag are required for update")

    params = UpdateProductParams.from_draft(draft)
    try:
        updated = _first_row(await client.rpc(settings.update_product_rpc, params.to_rpc()))
        if not updated:
            return Failure(ErrorKind.NOT_FOUND, "Product not found after update")
        return Ok(Product.model_validate(updated))
    except Exception as e:  # noqa: BLE001
        return _failure(e, f"updating product {draft.id}", "Could not update product")


async def sync_product_images(
    client: SupabaseClient,
    records: Sequence[PendingImage],
) -> Result[List[ProductImage]]:
    """Insert standalone image rows for an already persisted product."""
    if not records:
        return Ok([])
    rows = [r.model_dump(mode="json") for r in records]
    try:
        inserted = await client.insert(settings.product_images_table, rows)
        if not inserted:
            return Failure(ErrorKind.NOT_FOUND, "No product images were stored")
        return Ok([ProductImage.model_validate(r) for r in inserted])
    except Exception as e:  # noqa: BLE001
        return _failure(e, "syncing product images", "Could not sync product images")


# -------------------------
# Profiles
# -------------------------
async def get_profile(client: SupabaseClient, user_id: str) -> Result[Profile]:
    try:
        row = await client.select(settings.profiles_table, PROFILE_COLUMNS, {"id": user_id}, single=True)
        if not row:
            return Failure(ErrorKind.NOT_FOUND, "Profile not found")
        return Ok(Profile.model_validate(row))
    except RemoteError as e:
        if e.kind is ErrorKind.NOT_FOUND:
            return Failure(ErrorKind.NOT_FOUND, "Profile not found")
        return _failure(e, f"loading profile {user_id}", "Could not load profile")
    except Exception as e:  # noqa: BLE001
        return _failure(e, f"loading profile {user_id}", "Could not load profile")


async def upsert_profile(client: SupabaseClient, profile: Profile) -> Result[Profile]:
    payload = profile.model_dump(mode="json")
    if payload.get("updated_at") is None:
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    try:
        saved = _first_row(await client.upsert(settings.profiles_table, payload))
        return Ok(Profile.model_validate(saved or payload))
    except Exception as e:  # noqa: BLE001
        return _failure(e, f"saving profile {profile.id}", "Could not update profile")
