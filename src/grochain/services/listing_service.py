"""Listing Publisher — turns an approved harvest into a marketplace listing.

One listing per harvest is enforced twice: an application-level lookup gives
a clean 409 in the common case, and the unique index on
``marketplace_listings.harvest_id`` turns a concurrent double submission's
IntegrityError into the same ListingAlreadyExistsError.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from grochain.domain.enums import HarvestStatus, ListingStatus, UserRole
from grochain.domain.exceptions import (
    AuthorizationError,
    HarvestNotApprovedError,
    HarvestNotFoundError,
    InvalidPriceError,
    ListingAlreadyExistsError,
    ListingNotFoundError,
)
from grochain.infrastructure.database.orm_models import MarketplaceListing
from grochain.infrastructure.database.repositories import HarvestRepository, ListingRepository
from grochain.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from grochain.domain.principal import Principal

logger = get_logger(__name__)


def parse_price(price: object) -> Decimal:
    """Return ``price`` as a positive Decimal or raise InvalidPriceError."""
    if isinstance(price, bool):
        raise InvalidPriceError(price)
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError) as err:
        raise InvalidPriceError(price) from err
    if not value.is_finite() or value <= 0:
        raise InvalidPriceError(price)
    return value


class ListingService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._harvest_repo = HarvestRepository(session)
        self._listing_repo = ListingRepository(session)

    async def create_listing_from_harvest(
        self,
        principal: Principal,
        harvest_id: uuid.UUID,
        price: object,
        description: str | None = None,
    ) -> MarketplaceListing:
        """Publish an ``active`` listing for an approved harvest.

        Raises:
            AuthorizationError: Caller is neither a farmer nor an admin, or a
                farmer listing someone else's harvest.
            InvalidPriceError: ``price`` is not a positive number.
            HarvestNotFoundError: No such harvest.
            HarvestNotApprovedError: Harvest is still pending or was rejected.
            ListingAlreadyExistsError: The harvest already has a listing.
        """
        principal.require_role(UserRole.FARMER, UserRole.ADMIN, action="create listings")
        listing_price = parse_price(price)

        harvest = await self._harvest_repo.get_by_id(harvest_id)
        if harvest is None:
            raise HarvestNotFoundError(str(harvest_id))
        if not principal.is_admin and harvest.farmer_id != principal.user_id:
            raise AuthorizationError("Farmers can only list their own harvests")
        if harvest.status != HarvestStatus.APPROVED.value:
            raise HarvestNotApprovedError(str(harvest_id), harvest.status)

        if await self._listing_repo.get_by_harvest_id(harvest.id) is not None:
            raise ListingAlreadyExistsError(str(harvest_id))

        listing = MarketplaceListing(
            harvest_id=harvest.id,
            farmer_id=harvest.farmer_id,
            crop_name=harvest.crop_type,
            price=listing_price,
            quantity=harvest.quantity,
            unit=harvest.unit,
            description=description if description is not None else harvest.description,
            quality=harvest.quality,
            location=harvest.location,
            status=ListingStatus.ACTIVE.value,
        )
        try:
            listing = await self._listing_repo.create(listing)
        except IntegrityError as err:
            await self._session.rollback()
            logger.warning("listing.duplicate_rejected", harvest_id=str(harvest_id))
            raise ListingAlreadyExistsError(str(harvest_id)) from err

        logger.info(
            "listing.created",
            listing_id=str(listing.id),
            harvest_id=str(harvest.id),
            price=str(listing_price),
        )
        return listing

    async def get_listing(self, listing_id: uuid.UUID) -> MarketplaceListing:
        listing = await self._listing_repo.get_by_id(listing_id)
        if listing is None:
            raise ListingNotFoundError(str(listing_id))
        return listing

    async def remove_listing(self, principal: Principal, listing_id: uuid.UUID) -> MarketplaceListing:
        """Withdraw a listing from sale (status ``removed``)."""
        principal.require_role(UserRole.FARMER, UserRole.ADMIN, action="remove listings")
        listing = await self.get_listing(listing_id)
        if not principal.is_admin and listing.farmer_id != principal.user_id:
            raise AuthorizationError("Farmers can only remove their own listings")
        await self._listing_repo.update_status(listing, ListingStatus.REMOVED.value)
        logger.info("listing.removed", listing_id=str(listing_id), by=principal.user_id)
        return listing
