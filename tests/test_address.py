"""Tests for address validation and resolution."""
from __future__ import annotations

from typing import Dict, Optional

import pytest

from shopware_ucp.address import AddressResolver, validate_address
from shopware_ucp.exceptions import AddressMappingError
from shopware_ucp.models.ucp import Address


def valid_address(**overrides) -> Address:
    values = dict(
        first_name="Jan",
        last_name="Jansen",
        street_address="Keizersgracht 1",
        address_locality="Amsterdam",
        address_region="NH",
        postal_code="1015 CJ",
        address_country="nl",
    )
    values.update(overrides)
    return Address(**values)


class FakeLookup:
    def __init__(
        self,
        countries: Optional[Dict[str, str]] = None,
        states: Optional[Dict[str, str]] = None,
        salutation_id: Optional[str] = "salutation-not-specified",
    ) -> None:
        self.countries = {"NL": "country-nl"} if countries is None else countries
        self.states = {"NH": "state-nh"} if states is None else states
        self.salutation_id = salutation_id
        self.country_lookups = []

    async def get_country_id(self, iso_code: str) -> Optional[str]:
        self.country_lookups.append(iso_code)
        return self.countries.get(iso_code)

    async def get_country_state_id(self, country_id: str, region: str) -> Optional[str]:
        return self.states.get(region)

    async def get_default_salutation_id(self) -> Optional[str]:
        return self.salutation_id


class TestValidateAddress:
    """Tests for validate_address."""

    def test_valid(self):
        assert validate_address(valid_address()) == []

    def test_reports_every_missing_field(self):
        errors = validate_address(Address())
        assert {e.field for e in errors} == {
            "first_name",
            "last_name",
            "street_address",
            "address_locality",
            "postal_code",
            "address_country",
        }
        assert {e.code for e in errors} == {"required"}

    def test_blank_counts_as_missing(self):
        errors = validate_address(valid_address(address_locality="   "))
        assert [(e.field, e.code) for e in errors] == [("address_locality", "required")]

    @pytest.mark.parametrize("country", ["NLD", "N", "1A"])
    def test_country_must_be_alpha2(self, country):
        errors = validate_address(valid_address(address_country=country))
        assert [(e.field, e.code) for e in errors] == [("address_country", "invalid_format")]


class TestAddressResolver:
    """Tests for AddressResolver.resolve."""

    @pytest.mark.asyncio
    async def test_resolves_ids(self):
        lookup = FakeLookup()
        record = await AddressResolver(lookup).resolve(valid_address())

        assert lookup.country_lookups == ["NL"]
        assert record.country_id == "country-nl"
        assert record.country_state_id == "state-nh"
        assert record.salutation_id == "salutation-not-specified"
        assert record.city == "Amsterdam"

    @pytest.mark.asyncio
    async def test_invalid_address_skips_lookup(self):
        lookup = FakeLookup()
        with pytest.raises(AddressMappingError) as exc_info:
            await AddressResolver(lookup).resolve(valid_address(first_name=""))

        assert exc_info.value.code == "required"
        assert exc_info.value.error_code == "validation_error"
        assert lookup.country_lookups == []

    @pytest.mark.asyncio
    async def test_unknown_country(self):
        with pytest.raises(AddressMappingError) as exc_info:
            await AddressResolver(FakeLookup(countries={})).resolve(valid_address())
        assert exc_info.value.code == "invalid_country"

    @pytest.mark.asyncio
    async def test_missing_salutation(self):
        with pytest.raises(AddressMappingError) as exc_info:
            await AddressResolver(FakeLookup(salutation_id=None)).resolve(valid_address())
        assert exc_info.value.code == "salutation_not_found"

    @pytest.mark.asyncio
    async def test_unknown_region_is_tolerated(self, caplog):
        record = await AddressResolver(FakeLookup(states={})).resolve(valid_address())

        assert record.country_state_id is None
        assert "Country state not found" in caplog.text
