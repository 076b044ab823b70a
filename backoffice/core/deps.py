from typing import AsyncIterator

from fastapi import Depends

from backoffice.core.auth import CurrentUser, get_current_user
from backoffice.core.config import get_settings
from backoffice.core.remote import SupabaseClient


async def get_client(user: CurrentUser = Depends(get_current_user)) -> AsyncIterator[SupabaseClient]:
    """Per-request Supabase client acting as the signed-in user."""
    client = SupabaseClient.from_settings(get_settings(), access_token=user.access_token)
    try:
        yield client
    finally:
        await client.aclose()
