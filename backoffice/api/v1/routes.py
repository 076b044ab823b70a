from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response

from backoffice import repositories
from backoffice.core.auth import CurrentUser, get_current_user
from backoffice.core.config import settings
from backoffice.core.deps import get_client
from backoffice.core.errors import HTTP_STATUS_BY_KIND, ErrorKind, Failure
from backoffice.core.remote import SupabaseClient
from backoffice.images import ImageFile, download_image
from backoffice.schemas import PresentationType, Product, ProductRow, Profile
from backoffice.workflows import SubmissionOutcome, submit_product, update_account

router = APIRouter(prefix="/v1", dependencies=[Depends(get_current_user)])

TABLE_SORT_KEYS = set(ProductRow.model_fields)


def failure_response(failure: Failure, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": failure.kind.value, "message": failure.message}
    body.update(extra)
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND[failure.kind], content=body)


def outcome_response(outcome: SubmissionOutcome, created: bool = False) -> Any:
    if outcome.succeeded:
        payload = outcome.product if outcome.product is not None else outcome.profile
        return JSONResponse(
            status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
            content={"message": outcome.message, "data": payload.model_dump(mode="json")},
        )
    failure = outcome.failure
    if failure is None:
        failure = Failure(ErrorKind.UNKNOWN, outcome.message or "Unexpected error")
    return failure_response(failure, state=outcome.state.value, fields=outcome.field_errors)


def _sort_value(row: ProductRow, key: str) -> tuple:
    # Empty cells sort before any value.
    value = getattr(row, key)
    return (0, 0) if value is None else (1, value)


async def _read_files(files: Optional[List[UploadFile]]) -> List[ImageFile]:
    images = []
    for f in files or []:
        # Browsers send an empty part when the file input is left blank.
        if not f.filename:
            continue
        images.append(ImageFile(filename=f.filename, content=await f.read(), content_type=f.content_type))
    return images


def _product_form(**fields: Optional[str]) -> Dict[str, Any]:
    # Raw strings; the workflow validates them. Omitted fields fall back to
    # the draft defaults or are reported as missing.
    return {key: value for key, value in fields.items() if value is not None}


# -------------------------
# Products
# -------------------------
@router.get("/products", response_model=List[Product])
async def http_list_products(client: SupabaseClient = Depends(get_client)):
    result = await repositories.list_products(client)
    if isinstance(result, Failure):
        return failure_response(result)
    return result.value


@router.get("/products/table", response_model=List[ProductRow])
async def http_product_table(
    name: Optional[str] = Query(default=None, description="Case-insensitive name filter"),
    sort: Optional[str] = Query(default=None, description="Column key, '-' prefix for descending"),
    client: SupabaseClient = Depends(get_client),
):
    result = await repositories.list_products(client)
    if isinstance(result, Failure):
        return failure_response(result)

    rows = [ProductRow.from_product(p) for p in result.value]
    if name:
        needle = name.strip().lower()
        rows = [r for r in rows if needle in r.name.lower()]
    if sort:
        key = sort.lstrip("-")
        if key not in TABLE_SORT_KEYS:
            return failure_response(Failure(ErrorKind.VALIDATION, f"Cannot sort by {key!r}"))
        rows.sort(key=lambda r: _sort_value(r, key), reverse=sort.startswith("-"))
    return rows


@router.get("/products/{product_id}", response_model=Product)
async def http_get_product(product_id: str, client: SupabaseClient = Depends(get_client)):
    result = await repositories.get_product(client, product_id)
    if isinstance(result, Failure):
        return failure_response(result)
    return result.value


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def http_create_product(
    name: Optional[str] = Form(None),
    presentation_type: Optional[str] = Form(None),
    units_per_presentation: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None),
    reorder_level: Optional[str] = Form(None),
    reorder_quantity: Optional[str] = Form(None),
    purchase_price_box: Optional[str] = Form(None),
    purchase_price_unit: Optional[str] = Form(None),
    sale_price_box: Optional[str] = Form(None),
    sale_price_unit: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_client),
):
    form = _product_form(
        name=name,
        presentation_type=presentation_type,
        units_per_presentation=units_per_presentation,
        is_active=is_active,
        reorder_level=reorder_level,
        reorder_quantity=reorder_quantity,
        purchase_price_box=purchase_price_box,
        purchase_price_unit=purchase_price_unit,
        sale_price_box=sale_price_box,
        sale_price_unit=sale_price_unit,
    )
    outcome = await submit_product(client, form, await _read_files(images), owner_id=user.id)
    return outcome_response(outcome, created=True)


@router.put("/products/{product_id}")
async def http_update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    presentation_type: Optional[str] = Form(None),
    units_per_presentation: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None),
    reorder_level: Optional[str] = Form(None),
    reorder_quantity: Optional[str] = Form(None),
    purchase_price_box: Optional[str] = Form(None),
    purchase_price_unit: Optional[str] = Form(None),
    sale_price_box: Optional[str] = Form(None),
    sale_price_unit: Optional[str] = Form(None),
    product_price_id: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_client),
):
    form = _product_form(
        name=name,
        presentation_type=presentation_type,
        units_per_presentation=units_per_presentation,
        is_active=is_active,
        reorder_level=reorder_level,
        reorder_quantity=reorder_quantity,
        purchase_price_box=purchase_price_box,
        purchase_price_unit=purchase_price_unit,
        sale_price_box=sale_price_box,
        sale_price_unit=sale_price_unit,
        product_price_id=product_price_id,
    )
    form["id"] = product_id
    outcome = await submit_product(client, form, await _read_files(images), owner_id=user.id)
    return outcome_response(outcome)


@router.get("/images/{path:path}")
async def http_product_image(path: str, client: SupabaseClient = Depends(get_client)):
    result = await download_image(client, settings.product_images_bucket, path)
    if isinstance(result, Failure):
        return failure_response(result)
    return Response(content=result.value, media_type="application/octet-stream")


# -------------------------
# Account
# -------------------------
@router.get("/account", response_model=Profile)
async def http_get_account(
    user: CurrentUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_client),
):
    result = await repositories.get_profile(client, user.id)
    if isinstance(result, Failure):
        if result.kind is ErrorKind.NOT_FOUND:
            # First visit: no profile row yet.
            return Profile(id=user.id)
        return failure_response(result)
    return result.value


@router.put("/account")
async def http_update_account(
    fullname: str = Form(""),
    username: str = Form(""),
    website: str = Form(""),
    avatar_url: str = Form(""),
    avatar: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_client),
):
    form = {"fullname": fullname, "username": username, "website": website, "avatar_url": avatar_url}
    avatar_files = await _read_files([avatar] if avatar is not None else None)
    outcome = await update_account(client, user.id, form, avatar_files[0] if avatar_files else None)
    return outcome_response(outcome)


@router.get("/account/avatar")
async def http_account_avatar(
    user: CurrentUser = Depends(get_current_user),
    client: SupabaseClient = Depends(get_client),
):
    profile = await repositories.get_profile(client, user.id)
    if isinstance(profile, Failure):
        return failure_response(profile)
    if not profile.value.avatar_url:
        return failure_response(Failure(ErrorKind.NOT_FOUND, "No avatar uploaded"))

    result = await download_image(client, settings.avatars_bucket, profile.value.avatar_url)
    if isinstance(result, Failure):
        return failure_response(result)
    return Response(content=result.value, media_type="application/octet-stream")
