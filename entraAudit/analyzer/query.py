"""
Wildcard searches over assembled Conditional Access policies.
"""

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Set

from ..errors import PatternNotRecognizedError
from .locations import DEFAULT_COUNTRY_TABLE, CountryTable, NamedLocation, build_country_index, match_countries
from .models import AssembledConfig, Conditions, display_value


class Scope(str, Enum):
    INCLUDE = 'Include'
    EXCLUDE = 'Exclude'
    BOTH = 'Both'

    @classmethod
    def parse(cls, value) -> 'Scope':
        """Parse a scope name case-insensitively ('include', 'Exclude', 'BOTH')."""
        if isinstance(value, cls):
            return value
        for scope in cls:
            if scope.value.lower() == str(value).strip().lower():
                return scope
        raise ValueError(f"Invalid scope: {value} (expected include, exclude or both)")


@dataclass(frozen=True)
class PolicyMatch:
    policy_id: str
    display_name: str
    state: str
    scope: str
    matched: List[str] = field(default_factory=list)


def _matches(pattern: str, value: str) -> bool:
    return fnmatch.fnmatchcase((value or '').lower(), pattern)


def _display_hits(pattern: str, field_name: str) -> Callable[[Conditions], List[str]]:
    """Hit function returning the display values of one condition field that match the pattern."""
    lowered = (pattern or '').lower()

    def hits(conditions: Conditions) -> List[str]:
        values = [display_value(entry) for entry in getattr(conditions, field_name)]
        return [value for value in values if _matches(lowered, value)]

    return hits


def _find(scope, config: AssembledConfig, include_hits: Callable[[Conditions], List[str]],
          exclude_hits: Callable[[Conditions], List[str]]) -> List[PolicyMatch]:
    """Apply the include/exclude hit functions to every policy, in policy order."""
    scope = Scope.parse(scope)
    sides = []
    if scope in (Scope.INCLUDE, Scope.BOTH):
        sides.append((Scope.INCLUDE, include_hits))
    if scope in (Scope.EXCLUDE, Scope.BOTH):
        sides.append((Scope.EXCLUDE, exclude_hits))

    results = []
    for policy in config.policies:
        labels = []
        matched = []
        for side, hits_of in sides:
            hits = hits_of(policy.conditions)
            if hits:
                labels.append(side.value)
                matched.extend(hits)

        if labels:
            results.append(PolicyMatch(
                policy_id=policy.id,
                display_name=policy.display_name,
                state=policy.state,
                scope=', '.join(labels),
                matched=matched
            ))

    return results


def find_by_group(pattern: str, scope, config: AssembledConfig) -> List[PolicyMatch]:
    """Policies whose included/excluded groups match the pattern."""
    return _find(scope, config, _display_hits(pattern, 'include_groups'), _display_hits(pattern, 'exclude_groups'))


def find_by_user(pattern: str, scope, config: AssembledConfig) -> List[PolicyMatch]:
    """Policies whose included/excluded users match the pattern."""
    return _find(scope, config, _display_hits(pattern, 'include_users'), _display_hits(pattern, 'exclude_users'))


def find_by_app(pattern: str, scope, config: AssembledConfig) -> List[PolicyMatch]:
    """Policies whose included/excluded applications match the pattern."""
    return _find(scope, config, _display_hits(pattern, 'include_apps'), _display_hits(pattern, 'exclude_apps'))


def find_by_role(pattern: str, scope, config: AssembledConfig) -> List[PolicyMatch]:
    """Policies whose included/excluded directory roles match the pattern."""
    return _find(scope, config, _display_hits(pattern, 'include_roles'), _display_hits(pattern, 'exclude_roles'))


def country_codes(pattern: str, country_table: CountryTable = DEFAULT_COUNTRY_TABLE) -> Set[str]:
    """Country codes whose name matches the pattern.

    Needs no directory data, so callers can reject a bad pattern before fetching anything.

    Raises:
        PatternNotRecognizedError: If the pattern matches no country name
    """
    codes = match_countries(pattern, country_table)
    if not codes:
        raise PatternNotRecognizedError(pattern)
    return codes


def find_by_country(pattern: str, scope, config: AssembledConfig,
                    country_table: CountryTable = DEFAULT_COUNTRY_TABLE) -> List[PolicyMatch]:
    """Policies that include or exclude a named location covering a matching country.

    The pattern is matched against country names. The matched payload of each
    policy lists only the matching countries present in the locations that
    policy references.

    Raises:
        PatternNotRecognizedError: If the pattern matches no country name
    """
    codes = country_codes(pattern, country_table)
    index = build_country_index(config.named_locations)
    location_ids: Set[str] = {loc.id for code in codes for loc in index.get(code, [])}

    def location_hits(field_name: str) -> Callable[[Conditions], List[str]]:
        def hits(conditions: Conditions) -> List[str]:
            names = []
            for entry in getattr(conditions, field_name):
                if isinstance(entry, NamedLocation) and entry.id in location_ids:
                    for country in entry.countries:
                        code = country.code.upper()
                        if code in codes:
                            names.append(country.name or code)
            return names
        return hits

    return _find(scope, config, location_hits('include_locations'), location_hits('exclude_locations'))


SEARCHES = {
    'group': find_by_group,
    'user': find_by_user,
    'app': find_by_app,
    'role': find_by_role,
    'country': find_by_country,
}
