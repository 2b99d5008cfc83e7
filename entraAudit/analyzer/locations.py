"""
Named location construction and the country index used for country-based policy search.
"""

import fnmatch
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Optional, Set

from .countries import COUNTRY_NAMES


class CountryTable(Mapping):
    """Immutable mapping of ISO country codes to country names"""

    def __init__(self, names: Dict[str, str]):
        self._names = MappingProxyType({code.upper(): name for code, name in names.items()})

    def __getitem__(self, code: str) -> str:
        return self._names[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def name_of(self, code: str) -> Optional[str]:
        return self._names.get((code or '').upper())

    def with_overrides(self, overrides: Optional[Dict[str, str]]) -> 'CountryTable':
        """Return a new table with the given entries added or replaced."""
        if not overrides:
            return self
        merged = dict(self._names)
        merged.update({code.upper(): name for code, name in overrides.items()})
        return CountryTable(merged)


DEFAULT_COUNTRY_TABLE = CountryTable(COUNTRY_NAMES)


@dataclass(frozen=True)
class Country:
    code: str
    name: Optional[str]


@dataclass(frozen=True)
class NamedLocation:
    id: str
    display_name: str
    location_type: str
    is_trusted: bool = False
    ip_ranges: List[str] = field(default_factory=list)
    countries: List[Country] = field(default_factory=list)
    include_unknown_countries_and_regions: bool = False
    country_lookup_method: Optional[str] = None

    @property
    def country_codes(self) -> Set[str]:
        return {country.code for country in self.countries}


def build_named_location(raw: Dict, country_table: CountryTable = DEFAULT_COUNTRY_TABLE) -> NamedLocation:
    """Build a NamedLocation from a raw Graph namedLocation record.

    Country codes are mapped through the country table in their original
    order; codes missing from the table are kept with a null name. Absent
    trust and inclusion flags read as False.

    Parameters:
        raw (Dict): ipNamedLocation or countryNamedLocation object
        country_table (CountryTable): Code to name lookup

    Returns:
        NamedLocation: The built location
    """
    odata_type = raw.get('@odata.type', '')
    if 'countryNamedLocation' in odata_type or 'countriesAndRegions' in raw:
        location_type = 'country'
    elif 'ipNamedLocation' in odata_type or 'ipRanges' in raw:
        location_type = 'ip'
    else:
        location_type = 'unknown'

    ip_ranges = []
    for ip_range in raw.get('ipRanges') or []:
        if isinstance(ip_range, dict):
            cidr = ip_range.get('cidrAddress')
            if cidr:
                ip_ranges.append(cidr)
        elif ip_range:
            ip_ranges.append(str(ip_range))

    countries = [
        Country(code=code, name=country_table.name_of(code))
        for code in raw.get('countriesAndRegions') or []
    ]

    return NamedLocation(
        id=raw.get('id'),
        display_name=raw.get('displayName') or raw.get('id'),
        location_type=location_type,
        is_trusted=bool(raw.get('isTrusted')),
        ip_ranges=ip_ranges,
        countries=countries,
        include_unknown_countries_and_regions=bool(raw.get('includeUnknownCountriesAndRegions')),
        country_lookup_method=raw.get('countryLookupMethod')
    )


def build_country_index(named_locations: List[NamedLocation]) -> Dict[str, List[NamedLocation]]:
    """Map each country code to the named locations that contain it.

    Parameters:
        named_locations (List[NamedLocation]): Built named locations

    Returns:
        Dict[str, List[NamedLocation]]: Country code -> locations, in location order
    """
    index: Dict[str, List[NamedLocation]] = {}
    for location in named_locations:
        for country in location.countries:
            locations = index.setdefault(country.code.upper(), [])
            if location not in locations:
                locations.append(location)
    return index


def match_countries(pattern: str, country_table: CountryTable = DEFAULT_COUNTRY_TABLE) -> Set[str]:
    """Return the codes whose country name matches a shell-style wildcard (case-insensitive)."""
    lowered = (pattern or '').lower()
    return {
        code for code, name in country_table.items()
        if name and fnmatch.fnmatchcase(name.lower(), lowered)
    }
