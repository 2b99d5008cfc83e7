"""
Resolved Conditional Access policy structures.

Raw Graph policy records are converted into these types at assembly time;
every ID-bearing field holds resolved entities (or reserved keywords), never raw IDs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .locations import NamedLocation
from .resolver import ResolvedEntity


class PolicyState(str, Enum):
    ENABLED = 'enabled'
    DISABLED = 'disabled'
    REPORT_ONLY = 'enabledForReportingButNotEnforced'

    def __str__(self):
        return self.value

    @classmethod
    def from_raw(cls, value):
        """Known states become members; anything else is kept as-is."""
        try:
            return cls(value)
        except ValueError:
            return value


# A resolved principal/app/role entry, or a reserved keyword such as 'All'
Entry = Union[ResolvedEntity, str]
# A resolved location entry, or a reserved keyword such as 'AllTrusted'
LocationEntry = Union[NamedLocation, str]


def display_value(entry) -> str:
    """Display text of a resolved entry, keyword or named location."""
    if isinstance(entry, ResolvedEntity):
        return entry.display_value
    if isinstance(entry, NamedLocation):
        return entry.display_name
    return str(entry)


@dataclass(frozen=True)
class ExternalUsersCondition:
    guest_or_external_user_types: List[str] = field(default_factory=list)
    membership_kind: Optional[str] = None
    tenants: List[Entry] = field(default_factory=list)


@dataclass(frozen=True)
class DeviceFilter:
    mode: Optional[str] = None
    rule: Optional[str] = None


@dataclass(frozen=True)
class Conditions:
    include_users: List[Entry] = field(default_factory=list)
    exclude_users: List[Entry] = field(default_factory=list)
    include_groups: List[Entry] = field(default_factory=list)
    exclude_groups: List[Entry] = field(default_factory=list)
    include_roles: List[Entry] = field(default_factory=list)
    exclude_roles: List[Entry] = field(default_factory=list)
    include_guests_or_external_users: Optional[ExternalUsersCondition] = None
    exclude_guests_or_external_users: Optional[ExternalUsersCondition] = None
    include_apps: List[Entry] = field(default_factory=list)
    exclude_apps: List[Entry] = field(default_factory=list)
    include_user_actions: List[str] = field(default_factory=list)
    include_authentication_context_class_references: List[str] = field(default_factory=list)
    include_locations: List[LocationEntry] = field(default_factory=list)
    exclude_locations: List[LocationEntry] = field(default_factory=list)
    user_risk_levels: List[str] = field(default_factory=list)
    sign_in_risk_levels: List[str] = field(default_factory=list)
    service_principal_risk_levels: List[str] = field(default_factory=list)
    include_platforms: List[str] = field(default_factory=list)
    exclude_platforms: List[str] = field(default_factory=list)
    client_app_types: List[str] = field(default_factory=list)
    device_filter: Optional[DeviceFilter] = None


@dataclass(frozen=True)
class GrantControls:
    operator: Optional[str] = None
    built_in_controls: List[str] = field(default_factory=list)
    custom_authentication_factors: List[str] = field(default_factory=list)
    terms_of_use: List[Entry] = field(default_factory=list)
    authentication_strength: Optional[str] = None


@dataclass(frozen=True)
class SignInFrequency:
    is_enabled: bool = False
    value: Optional[int] = None
    type: Optional[str] = None
    frequency_interval: Optional[str] = None
    authentication_type: Optional[str] = None


@dataclass(frozen=True)
class SessionControls:
    application_enforced_restrictions: Optional[bool] = None
    cloud_app_security: Optional[str] = None
    persistent_browser: Optional[str] = None
    sign_in_frequency: Optional[SignInFrequency] = None
    disable_resilience_defaults: Optional[bool] = None


@dataclass(frozen=True)
class Policy:
    id: str
    display_name: str
    state: Union[PolicyState, str, None]
    created: Optional[str] = None
    modified: Optional[str] = None
    conditions: Conditions = field(default_factory=Conditions)
    grant_controls: Optional[GrantControls] = None
    session_controls: Optional[SessionControls] = None


@dataclass(frozen=True)
class AssembledConfig:
    policies: List[Policy]
    named_locations: List[NamedLocation]
