"""
Form submission workflows.

submit_product drives one product form submission through

    idle -> validating -> invalid
                       -> failed
                       -> uploading -> failed
                                    -> persisting -> failed
                                                  -> syncing_images -> failed
                                                                    -> done

An edit that omits the price row id or the active flag takes them from the
stored product before anything is uploaded; failing to load it ends the
submission while still validating.

Every failure is terminal for the attempt: nothing is retried and completed
remote writes are not rolled back. In particular, when image sync fails after
an update the product row is already committed and the images are not
attributed to it.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from backoffice import repositories
from backoffice.core.config import settings
from backoffice.core.errors import ErrorKind, Failure, Ok, RemoteError, Result
from backoffice.core.logging import get_logger, log_remote_failure
from backoffice.core.remote import SupabaseClient
from backoffice.images import ImageFile, upload_image, upload_images
from backoffice.schemas import AccountForm, Product, ProductDraft, Profile

logger = get_logger(__name__)


class SubmissionState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    INVALID = "invalid"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    SYNCING_IMAGES = "syncing_images"
    FAILED = "failed"
    DONE = "done"


@dataclass
class SubmissionOutcome:
    state: SubmissionState = SubmissionState.IDLE
    history: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.IDLE])
    product: Optional[Product] = None
    profile: Optional[Profile] = None
    field_errors: List[Dict[str, Any]] = field(default_factory=list)
    failure: Optional[Failure] = None
    message: str = ""

    def move(self, state: SubmissionState) -> None:
        self.state = state
        self.history.append(state)

    def fail(self, failure: Failure) -> "SubmissionOutcome":
        self.failure = failure
        self.message = failure.message
        self.move(SubmissionState.FAILED)
        return self

    @property
    def succeeded(self) -> bool:
        return self.state is SubmissionState.DONE


def field_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Field-level errors as plain JSON-friendly dicts."""
    return [
        {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in error.errors(include_url=False)
    ]


async def _complete_edit(client: SupabaseClient, draft: ProductDraft) -> Result[ProductDraft]:
    if draft.product_price_id is not None and draft.is_active is not None:
        return Ok(draft)
    loaded = await repositories.get_product(client, draft.id or "")
    if isinstance(loaded, Failure):
        return loaded
    stored = loaded.value
    if stored.product_prices is None or not stored.product_prices.id:
        logger.warning("product %s has no price row", draft.id)
        return Failure(ErrorKind.NOT_FOUND, "Product price not found")
    return Ok(
        draft.model_copy(
            update={
                "product_price_id": draft.product_price_id or stored.product_prices.id,
                "is_active": stored.is_active if draft.is_active is None else draft.is_active,
            }
        )
    )


def _nest_prices(form: Mapping[str, Any]) -> Dict[str, Any]:
    # Forms post price fields flat; the draft keeps them nested.
    data = dict(form)
    if "product_prices" not in data:
        data["product_prices"] = {
            key: data.pop(key)
            for key in ("purchase_price_box", "purchase_price_unit", "sale_price_box", "sale_price_unit")
            if key in data
        }
    return data


async def submit_product(
    client: SupabaseClient,
    form: Mapping[str, Any],
    files: Sequence[ImageFile] = (),
    owner_id: str = "",
) -> SubmissionOutcome:
    """
    Validate, upload images, then create or update the product.

    `owner_id` prefixes generated storage names; the product id is used
    instead when editing an existing product.
    """
    outcome = SubmissionOutcome()

    outcome.move(SubmissionState.VALIDATING)
    try:
        draft = ProductDraft.model_validate(_nest_prices(form))
    except ValidationError as e:
        outcome.field_errors = field_errors(e)
        outcome.failure = Failure(ErrorKind.VALIDATION, "Invalid product data")
        outcome.message = outcome.failure.message
        outcome.move(SubmissionState.INVALID)
        return outcome

    if draft.id:
        completed = await _complete_edit(client, draft)
        if isinstance(completed, Failure):
            return outcome.fail(completed)
        draft = completed.value

    pending = []
    if files:
        outcome.move(SubmissionState.UPLOADING)
        uploaded = await upload_images(
            client,
            settings.product_images_bucket,
            files,
            owner_id=draft.id or owner_id,
            product_id=draft.id,
        )
        if isinstance(uploaded, Failure):
            return outcome.fail(uploaded)
        pending = uploaded.value

    outcome.move(SubmissionState.PERSISTING)
    if draft.id:
        saved = await repositories.update_product(client, draft)
    else:
        saved = await repositories.create_product(client, draft, pending)
    if isinstance(saved, Failure):
        return outcome.fail(saved)
    outcome.product = saved.value

    if draft.id and pending:
        outcome.move(SubmissionState.SYNCING_IMAGES)
        synced = await repositories.sync_product_images(client, pending)
        if isinstance(synced, Failure):
            logger.warning("product %s updated but its %d new image(s) were not stored", draft.id, len(pending))
            return outcome.fail(synced)
        outcome.product = saved.value.model_copy(
            update={"product_images": [*saved.value.product_images, *synced.value]}
        )

    outcome.message = f"Product {'updated' if draft.id else 'created'} successfully"
    outcome.move(SubmissionState.DONE)
    logger.info("%s (id=%s)", outcome.message, outcome.product.id)
    return outcome


async def update_account(
    client: SupabaseClient,
    user_id: str,
    form: Mapping[str, Any],
    avatar: Optional[ImageFile] = None,
) -> SubmissionOutcome:
    """Validate the profile form, upload the avatar if one was picked, then upsert."""
    outcome = SubmissionOutcome()

    outcome.move(SubmissionState.VALIDATING)
    try:
        account = AccountForm.model_validate(dict(form))
    except ValidationError as e:
        outcome.field_errors = field_errors(e)
        outcome.failure = Failure(ErrorKind.VALIDATION, "Invalid profile data")
        outcome.message = outcome.failure.message
        outcome.move(SubmissionState.INVALID)
        return outcome

    avatar_url = account.avatar_url or None
    if avatar is not None:
        outcome.move(SubmissionState.UPLOADING)
        try:
            avatar_url = await upload_image(client, settings.avatars_bucket, avatar, user_id)
        except RemoteError as e:
            log_remote_failure(logger, e, f"uploading avatar for {user_id}")
            return outcome.fail(Failure(e.kind, "Could not upload avatar"))

    outcome.move(SubmissionState.PERSISTING)
    saved = await repositories.upsert_profile(
        client,
        Profile(
            id=user_id,
            full_name=account.fullname,
            username=account.username,
            website=account.website,
            avatar_url=avatar_url,
        ),
    )
    if isinstance(saved, Failure):
        return outcome.fail(saved)

    outcome.message = "Profile updated successfully"
    outcome.move(SubmissionState.DONE)
    outcome.profile = saved.value
    return outcome
