"""
Market Service - Catalog Store

出品 (Listing) を保持する。作成後は変更・削除しない。
"""

import logging
import math

from .errors import InvalidInput, NotFound
from .identity import IdentityStore
from .models import Listing, Role, new_id
from .store import LISTINGS, Store
from .tasks import run_to_completion

logger = logging.getLogger(__name__)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CatalogStore:
    def __init__(self, store: Store, identity: IdentityStore) -> None:
        self._store = store
        self._identity = identity
        self._listings: dict[str, Listing] = {}

    async def load(self) -> None:
        self._listings = {
            listing.id: listing
            for listing in map(Listing.model_validate, await self._store.load_all(LISTINGS))
        }
        logger.info("Loaded %d listings", len(self._listings))

    async def create_listing(
        self,
        owner_id: str,
        name,
        description,
        unit_price,
        total_quantity,
    ) -> Listing:
        owner = self._identity.get(owner_id)
        if owner is None or owner.role is not Role.PRODUCER:
            raise InvalidInput("Listing owner must be a registered producer")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Invalid product data: name is required")
        if not _is_number(unit_price) or not math.isfinite(unit_price) or unit_price <= 0:
            raise InvalidInput("Invalid product data: price must be a positive number")
        if not isinstance(total_quantity, int) or isinstance(total_quantity, bool) or total_quantity <= 0:
            raise InvalidInput("Invalid product data: quantity must be a positive integer")

        return await run_to_completion(
            self._commit(owner_id, name.strip(), description or "", float(unit_price), total_quantity),
            f"create listing {name.strip()!r}",
        )

    async def _commit(
        self, owner_id: str, name: str, description: str, unit_price: float, total_quantity: int
    ) -> Listing:
        listing = Listing(
            id=new_id(),
            owner_id=owner_id,
            name=name,
            description=description,
            unit_price=unit_price,
            total_quantity=total_quantity,
        )
        await self._store.append(LISTINGS, listing.model_dump(mode="json"))
        self._listings[listing.id] = listing
        logger.info(
            "Listing %s created by %s: %s x%d @ %.2f",
            listing.id, owner_id, listing.name, listing.total_quantity, listing.unit_price,
        )
        return listing

    def get_listing(self, listing_id: str) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise NotFound("Product not found")
        return listing

    def list_all(self) -> list[Listing]:
        return list(self._listings.values())
