import pytest

from entraAudit.analyzer.locations import (
    DEFAULT_COUNTRY_TABLE, Country, CountryTable, build_country_index, build_named_location, match_countries
)


def test_unknown_country_code_kept_with_null_name():
    """Codes missing from the table are kept, in order, with no name."""
    location = build_named_location({
        '@odata.type': '#microsoft.graph.countryNamedLocation',
        'id': 'loc-us',
        'displayName': 'US and unknown',
        'countriesAndRegions': ['US', 'XX'],
    })

    assert location.location_type == 'country'
    assert location.countries == [Country('US', 'United States'), Country('XX', None)]
    assert location.is_trusted is False
    assert location.include_unknown_countries_and_regions is False


def test_ip_location():
    location = build_named_location({
        '@odata.type': '#microsoft.graph.ipNamedLocation',
        'id': 'loc-hq',
        'displayName': 'HQ',
        'isTrusted': True,
        'ipRanges': [
            {'@odata.type': '#microsoft.graph.iPv4CidrRange', 'cidrAddress': '10.0.0.0/8'},
            {'@odata.type': '#microsoft.graph.iPv6CidrRange', 'cidrAddress': '2001:db8::/32'},
        ],
    })

    assert location.location_type == 'ip'
    assert location.is_trusted is True
    assert location.ip_ranges == ['10.0.0.0/8', '2001:db8::/32']
    assert location.countries == []


def test_substitute_country_table():
    table = CountryTable({'US': 'Freedonia'})
    location = build_named_location({'id': 'l', 'countriesAndRegions': ['us', 'FR']}, table)
    assert [c.name for c in location.countries] == ['Freedonia', None]


def test_country_table_is_immutable():
    with pytest.raises(TypeError):
        DEFAULT_COUNTRY_TABLE['US'] = 'Elsewhere'


def test_country_table_overrides_return_new_table():
    table = DEFAULT_COUNTRY_TABLE.with_overrides({'xk': 'Kosovo'})
    assert table.name_of('XK') == 'Kosovo'
    assert table.name_of('US') == 'United States'
    assert 'XK' not in DEFAULT_COUNTRY_TABLE


def test_country_index():
    first = build_named_location({'id': 'a', 'countriesAndRegions': ['US', 'CA']})
    second = build_named_location({'id': 'b', 'countriesAndRegions': ['US']})

    index = build_country_index([first, second])
    assert [loc.id for loc in index['US']] == ['a', 'b']
    assert [loc.id for loc in index['CA']] == ['a']
    assert 'FR' not in index


def test_match_countries_wildcards():
    assert match_countries('united*') >= {'US', 'GB'}
    assert match_countries('FRANCE') == {'FR'}
    assert match_countries('Atlantis') == set()
