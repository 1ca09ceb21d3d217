"""Favorites endpoints under /v1/favorites."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from savebags.routes.deps import current_identity, get_cache, get_remote
from savebags.services.favorites import list_favorites, toggle_favorite
from savebags.services.identity import Identity
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore

router = APIRouter()


class FavoritesResponse(BaseModel):
    merchant_ids: list[str] = Field(alias="merchantIds")
    added: bool | None = None

    model_config = {"populate_by_name": True}


@router.get("", response_model=FavoritesResponse)
async def get_favorites(
    identity: Identity = Depends(current_identity),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> FavoritesResponse:
    return FavoritesResponse(merchant_ids=await list_favorites(identity.id, remote=remote, cache=cache))


@router.post("/{merchant_id}/toggle", response_model=FavoritesResponse)
async def post_toggle(
    merchant_id: str,
    identity: Identity = Depends(current_identity),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> FavoritesResponse:
    added = await toggle_favorite(identity.id, merchant_id, remote=remote, cache=cache)
    return FavoritesResponse(
        merchant_ids=await list_favorites(identity.id, remote=remote, cache=cache),
        added=added,
    )
