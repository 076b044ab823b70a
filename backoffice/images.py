from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from backoffice.core.errors import ErrorKind, Failure, Ok, RemoteError, Result
from backoffice.core.logging import get_logger, log_remote_failure
from backoffice.core.remote import SupabaseClient
from backoffice.schemas import PendingImage

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageFile:
    """A file selected in a form, already read into memory."""

    filename: str
    content: bytes
    content_type: Optional[str] = None


def generate_image_name(filename: str, owner_id: str) -> str:
    """
    Storage path for a new upload: `{owner_id}-{random fraction}.{extension}`.

    The extension is whatever follows the last dot of the original name.
    """
    extension = filename.rsplit(".", 1)[-1]
    return f"{owner_id}-{random.random()}.{extension}"


async def upload_image(
    client: SupabaseClient,
    bucket: str,
    file: ImageFile,
    owner_id: str,
) -> str:
    path = generate_image_name(file.filename, owner_id)
    await client.upload(bucket, path, file.content, file.content_type)
    return path


async def upload_images(
    client: SupabaseClient,
    bucket: str,
    files: Sequence[ImageFile],
    owner_id: str,
    product_id: Optional[str] = None,
) -> Result[List[PendingImage]]:
    """
    Upload every file concurrently and wait for the whole batch to settle.

    If any upload fails the batch fails and no image record is returned.
    Otherwise the first file (in selection order) is primary and sort_order
    is the original index.
    """
    outcomes = await asyncio.gather(
        *(upload_image(client, bucket, f, owner_id) for f in files),
        return_exceptions=True,
    )

    errors = [o for o in outcomes if isinstance(o, BaseException)]
    if errors:
        first = errors[0]
        if isinstance(first, RemoteError):
            log_remote_failure(logger, first, f"uploading {len(files)} image(s)")
            kind = first.kind
        else:
            logger.error("unexpected error while uploading images: %r", first)
            kind = ErrorKind.UNKNOWN
        uploaded = [o for o in outcomes if isinstance(o, str)]
        if uploaded:
            # TODO: remove objects left behind by a partially failed batch.
            logger.warning("image batch failed; %d uploaded object(s) left unattributed: %s", len(uploaded), uploaded)
        return Failure(kind, "Could not upload images")

    return Ok(
        [
            PendingImage(product_id=product_id, image_url=path, is_primary=index == 0, sort_order=index)
            for index, path in enumerate(outcomes)
        ]
    )


async def download_image(client: SupabaseClient, bucket: str, path: str) -> Result[bytes]:
    try:
        return Ok(await client.download(bucket, path))
    except RemoteError as e:
        log_remote_failure(logger, e, f"downloading {bucket}/{path}")
        return Failure(e.kind, "Could not download image")
