"""
Policy assembly - turns raw Conditional Access policy records into resolved Policy objects.

Every ID-bearing condition and control is resolved through one IdentityResolver
per run, so an object referenced by many policies is looked up only once.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from ..errors import SourceFetchError
from .locations import DEFAULT_COUNTRY_TABLE, CountryTable, NamedLocation, build_named_location
from .models import (
    AssembledConfig, Conditions, DeviceFilter, ExternalUsersCondition,
    GrantControls, Policy, PolicyState, SessionControls, SignInFrequency
)
from .resolver import EntityKind, IdentityResolver, sentinel_token


class PolicyAssembler:
    """Assembles display-ready policies from raw Graph records"""

    def __init__(self, api_client, country_table: CountryTable = DEFAULT_COUNTRY_TABLE,
                 threads: int = 1, progress_callback: Optional[Callable] = None):
        """Initialize the assembler.

        Parameters:
            api_client: Directory query service (GraphAPIClient or compatible)
            country_table (CountryTable): Country code to name lookup for named locations
            threads (int): Number of worker threads resolving policies (default: 1)
            progress_callback (callable, optional): Callback function(percent, message)
        """
        self.api_client = api_client
        self.country_table = country_table
        self.threads = max(1, threads or 1)
        self.progress_callback = progress_callback
        self.resolver: Optional[IdentityResolver] = None

    def assemble_from_source(self) -> AssembledConfig:
        """Fetch policies, named locations and terms of use, then assemble them.

        Returns:
            AssembledConfig: Resolved policies and named locations

        Raises:
            SourceFetchError: If any of the three collections cannot be fetched
        """
        collections = {}
        for resource_type in ('policies', 'namedLocations', 'termsOfUse'):
            try:
                collections[resource_type] = self.api_client.list_all(resource_type)
            except SourceFetchError:
                raise
            except Exception as e:
                raise SourceFetchError(resource_type, e) from e

            if self.progress_callback:
                self.progress_callback(None, f"✓ Fetched {len(collections[resource_type])} {resource_type}")

        return self.assemble(collections['policies'], collections['namedLocations'], collections['termsOfUse'])

    def assemble(self, raw_policies: List[Dict], raw_named_locations: List[Dict],
                 raw_terms_of_use: List[Dict]) -> AssembledConfig:
        """Build resolved policies and named locations from raw records.

        Parameters:
            raw_policies (List[Dict]): conditionalAccessPolicy objects
            raw_named_locations (List[Dict]): namedLocation objects
            raw_terms_of_use (List[Dict]): agreement objects

        Returns:
            AssembledConfig: Policies in input order and the built named locations
        """
        self.resolver = IdentityResolver(self.api_client)

        named_locations = [build_named_location(raw, self.country_table) for raw in raw_named_locations or []]
        self.resolver.seed(EntityKind.NAMED_LOCATION, {loc.id: loc.display_name for loc in named_locations})
        self.resolver.seed(EntityKind.TERMS_OF_USE, {
            tou.get('id'): tou.get('displayName') for tou in raw_terms_of_use or [] if tou.get('id')
        })
        location_map = {loc.id: loc for loc in named_locations}

        raw_policies = raw_policies or []
        if self.progress_callback:
            self.progress_callback(None, f"Resolving {len(raw_policies)} policies...")

        if self.threads > 1 and len(raw_policies) > 1:
            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                policies = list(executor.map(lambda raw: self._assemble_policy(raw, location_map), raw_policies))
        else:
            policies = [self._assemble_policy(raw, location_map) for raw in raw_policies]

        if self.progress_callback:
            self.progress_callback(None, f"✓ Resolved {len(policies)} policies")

        return AssembledConfig(policies=policies, named_locations=named_locations)

    def _assemble_policy(self, raw: Dict, location_map: Dict[str, NamedLocation]) -> Policy:
        conditions = raw.get('conditions') or {}
        grant_controls = raw.get('grantControls')
        session_controls = raw.get('sessionControls')

        return Policy(
            id=raw.get('id'),
            display_name=raw.get('displayName'),
            state=PolicyState.from_raw(raw.get('state')),
            created=raw.get('createdDateTime'),
            modified=raw.get('modifiedDateTime'),
            conditions=self._build_conditions(conditions, location_map),
            grant_controls=self._build_grant_controls(grant_controls) if grant_controls else None,
            session_controls=self._build_session_controls(session_controls) if session_controls else None
        )

    def _build_conditions(self, raw: Dict, location_map: Dict[str, NamedLocation]) -> Conditions:
        resolve = self.resolver.resolve_many
        users = raw.get('users') or {}
        applications = raw.get('applications') or {}
        locations = raw.get('locations') or {}
        platforms = raw.get('platforms') or {}
        devices = raw.get('devices') or {}
        device_filter = devices.get('deviceFilter')

        return Conditions(
            include_users=resolve(users.get('includeUsers'), EntityKind.USER),
            exclude_users=resolve(users.get('excludeUsers'), EntityKind.USER),
            include_groups=resolve(users.get('includeGroups'), EntityKind.GROUP),
            exclude_groups=resolve(users.get('excludeGroups'), EntityKind.GROUP),
            include_roles=resolve(users.get('includeRoles'), EntityKind.DIRECTORY_ROLE),
            exclude_roles=resolve(users.get('excludeRoles'), EntityKind.DIRECTORY_ROLE),
            include_guests_or_external_users=self._build_external_users(users.get('includeGuestsOrExternalUsers')),
            exclude_guests_or_external_users=self._build_external_users(users.get('excludeGuestsOrExternalUsers')),
            include_apps=resolve(applications.get('includeApplications'), EntityKind.APPLICATION),
            exclude_apps=resolve(applications.get('excludeApplications'), EntityKind.APPLICATION),
            include_user_actions=list(applications.get('includeUserActions') or []),
            include_authentication_context_class_references=list(
                applications.get('includeAuthenticationContextClassReferences') or []
            ),
            include_locations=self._resolve_locations(locations.get('includeLocations'), location_map),
            exclude_locations=self._resolve_locations(locations.get('excludeLocations'), location_map),
            user_risk_levels=list(raw.get('userRiskLevels') or []),
            sign_in_risk_levels=list(raw.get('signInRiskLevels') or []),
            service_principal_risk_levels=list(raw.get('servicePrincipalRiskLevels') or []),
            include_platforms=list(platforms.get('includePlatforms') or []),
            exclude_platforms=list(platforms.get('excludePlatforms') or []),
            client_app_types=list(raw.get('clientAppTypes') or []),
            device_filter=DeviceFilter(mode=device_filter.get('mode'), rule=device_filter.get('rule')) if device_filter else None
        )

    def _build_external_users(self, raw: Optional[Dict]) -> Optional[ExternalUsersCondition]:
        if not raw:
            return None

        user_types = raw.get('guestOrExternalUserTypes') or ''
        if isinstance(user_types, str):
            user_types = [t.strip() for t in user_types.split(',') if t.strip()]

        external_tenants = raw.get('externalTenants') or {}
        return ExternalUsersCondition(
            guest_or_external_user_types=list(user_types),
            membership_kind=external_tenants.get('membershipKind'),
            tenants=self.resolver.resolve_many(external_tenants.get('members'), EntityKind.TENANT)
        )

    def _resolve_locations(self, location_ids: Optional[List[str]], location_map: Dict[str, NamedLocation]) -> List:
        """Resolve location IDs against the built named locations.

        Reserved keywords are kept; IDs without a named location are dropped.
        """
        resolved = []
        for location_id in location_ids or []:
            token = sentinel_token(location_id)
            if token:
                resolved.append(token)
            elif location_id in location_map:
                resolved.append(location_map[location_id])
        return resolved

    def _build_grant_controls(self, raw: Dict) -> GrantControls:
        auth_strength = raw.get('authenticationStrength')
        if isinstance(auth_strength, dict):
            auth_strength = auth_strength.get('displayName') or auth_strength.get('id')

        return GrantControls(
            operator=raw.get('operator'),
            built_in_controls=list(raw.get('builtInControls') or []),
            custom_authentication_factors=list(raw.get('customAuthenticationFactors') or []),
            terms_of_use=self.resolver.resolve_many(raw.get('termsOfUse'), EntityKind.TERMS_OF_USE),
            authentication_strength=auth_strength
        )

    def _build_session_controls(self, raw: Dict) -> SessionControls:
        restrictions = raw.get('applicationEnforcedRestrictions') or {}
        cloud_app_security = raw.get('cloudAppSecurity') or {}
        persistent_browser = raw.get('persistentBrowser') or {}
        sign_in_frequency = raw.get('signInFrequency')

        return SessionControls(
            application_enforced_restrictions=restrictions.get('isEnabled') if restrictions else None,
            cloud_app_security=cloud_app_security.get('cloudAppSecurityType') if cloud_app_security.get('isEnabled') else None,
            persistent_browser=persistent_browser.get('mode') if persistent_browser.get('isEnabled') else None,
            sign_in_frequency=SignInFrequency(
                is_enabled=bool(sign_in_frequency.get('isEnabled')),
                value=sign_in_frequency.get('value'),
                type=sign_in_frequency.get('type'),
                frequency_interval=sign_in_frequency.get('frequencyInterval'),
                authentication_type=sign_in_frequency.get('authenticationType')
            ) if sign_in_frequency else None,
            disable_resilience_defaults=raw.get('disableResilienceDefaults')
        )
