"""UCP address validation and resolution to platform address records.

Country, region and salutation identifiers are resolved by a platform lookup
collaborator; the mapper only renames fields and injects those ids.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from .exceptions import AddressMappingError
from .mapper import CartMapper
from .models.shopware import ShopwareAddress
from .models.ucp import Address

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AddressFieldError:
    field: str
    code: str
    message: str


_REQUIRED_FIELDS = (
    ("first_name", "First name is required"),
    ("last_name", "Last name is required"),
    ("street_address", "Street address is required"),
    ("address_locality", "City is required"),
    ("postal_code", "Postal code is required"),
    ("address_country", "Country is required"),
)


def validate_address(address: Address) -> List[AddressFieldError]:
    """Return every problem with ``address``; an empty list means valid."""
    errors: List[AddressFieldError] = []
    for name, message in _REQUIRED_FIELDS:
        value = getattr(address, name)
        if not value or not value.strip():
            errors.append(AddressFieldError(field=name, code="required", message=message))

    country = (address.address_country or "").strip()
    if country and (len(country) != 2 or not country.isalpha()):
        errors.append(
            AddressFieldError(
                field="address_country",
                code="invalid_format",
                message='Country must be ISO 3166-1 alpha-2 code (e.g., "NL", "DE")',
            )
        )
    return errors


class PlatformLookup(Protocol):
    """Resolves platform identifiers for address records."""

    async def get_country_id(self, iso_code: str) -> Optional[str]:
        ...

    async def get_country_state_id(self, country_id: str, region: str) -> Optional[str]:
        ...

    async def get_default_salutation_id(self) -> Optional[str]:
        ...


class AddressResolver:
    """Validates a UCP address and turns it into a platform address record."""

    def __init__(self, lookup: PlatformLookup, mapper: Optional[CartMapper] = None) -> None:
        self._lookup = lookup
        self._mapper = mapper or CartMapper()

    async def resolve(self, address: Address) -> ShopwareAddress:
        """
        Resolve ids and map ``address``.

        Raises:
            AddressMappingError: If the address is invalid, or the country or
                default salutation cannot be found. A missing region is
                tolerated.
        """
        errors = validate_address(address)
        if errors:
            first = errors[0]
            raise AddressMappingError(first.code, first.message, field=first.field)

        iso = address.address_country.strip().upper()
        country_id = await self._lookup.get_country_id(iso)
        if not country_id:
            raise AddressMappingError(
                "invalid_country", f"Country not found: {iso}", field="address_country"
            )

        state_id: Optional[str] = None
        if address.address_region:
            state_id = await self._lookup.get_country_state_id(country_id, address.address_region)
            if not state_id:
                logger.warning(
                    f"Country state not found, continuing without state: "
                    f"country_id={country_id}, region={address.address_region}"
                )

        salutation_id = await self._lookup.get_default_salutation_id()
        if not salutation_id:
            raise AddressMappingError("salutation_not_found", "Default salutation not found")

        return self._mapper.map_to_shopware_address(address, country_id, salutation_id, state_id)


__all__ = [
    "AddressFieldError",
    "validate_address",
    "PlatformLookup",
    "AddressResolver",
]
