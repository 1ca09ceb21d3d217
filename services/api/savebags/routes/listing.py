"""Consumer listing endpoint.

GET /v1/listing - merchants visible to consumers, nearest first by default.

Routers are thin: call services for business logic.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from savebags.routes.deps import get_cache, get_remote, optional_identity
from savebags.schemas import Coordinate, ListingResponse
from savebags.services.favorites import list_favorites
from savebags.services.identity import Identity
from savebags.services.listing import SORT_KEYS, ListingFilters, load_listing
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore

router = APIRouter()


@router.get("", response_model=ListingResponse)
async def get_listing(
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    q: str = Query(default="", max_length=100, description="Search by name or type"),
    category: str | None = Query(default=None, examples=["bakery", "cafe"]),
    min_price: float | None = Query(default=None, alias="minPrice", ge=0),
    max_price: float | None = Query(default=None, alias="maxPrice", ge=0),
    dietary: list[str] | None = Query(default=None),
    favorites_only: bool = Query(default=False, alias="favoritesOnly"),
    pickup_from: str | None = Query(default=None, alias="pickupFrom", pattern=r"^\d{2}:\d{2}$"),
    pickup_until: str | None = Query(default=None, alias="pickupUntil", pattern=r"^\d{2}:\d{2}$"),
    sort: str = Query(default="distance", pattern="^(" + "|".join(SORT_KEYS) + ")$"),
    identity: Identity | None = Depends(optional_identity),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> ListingResponse:
    """Get listable merchants with distances from (lat, lng) when given."""
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="lat and lng must be provided together")
    coordinate = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None

    favorites = None
    if favorites_only:
        if identity is None:
            raise HTTPException(status_code=401, detail="Sign in to filter by favorites")
        favorites = set(await list_favorites(identity.id, remote=remote, cache=cache))

    entries = await load_listing(
        remote=remote,
        cache=cache,
        coordinate=coordinate,
        filters=ListingFilters(
            search=q,
            category=category,
            min_price=min_price,
            max_price=max_price,
            dietary=dietary or [],
            favorites=favorites,
            pickup_from=pickup_from,
            pickup_until=pickup_until,
            sort=sort,
        ),
    )
    return ListingResponse(entries=entries, count=len(entries), coordinate=coordinate)
