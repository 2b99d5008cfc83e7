"""
Directory role assignment export (active and eligible assignments).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .resolver import EntityKind, IdentityResolver


ODATA_PRINCIPAL_TYPES = {
    '#microsoft.graph.user': 'User',
    '#microsoft.graph.group': 'Group',
    '#microsoft.graph.servicePrincipal': 'ServicePrincipal',
}


@dataclass(frozen=True)
class RoleAssignmentRow:
    role: str
    principal: str
    principal_type: str
    principal_id: str
    assignment_type: str
    member_type: Optional[str]
    start: Optional[str]
    end: Optional[str]
    directory_scope: str


def _describe_principal(record: Dict, resolver: IdentityResolver) -> Tuple[str, str]:
    """Return (display value, principal type) for an assignment record."""
    principal = record.get('principal') or {}
    if principal:
        principal_type = ODATA_PRINCIPAL_TYPES.get(principal.get('@odata.type'), 'Unknown')
        name = principal.get('userPrincipalName') or principal.get('displayName') or record.get('principalId')
        return name, principal_type

    principal_id = record.get('principalId')
    user = resolver.resolve(principal_id, EntityKind.USER)
    if user is not None and not getattr(user, 'is_placeholder', False):
        return user.display_value, 'User'
    group = resolver.resolve(principal_id, EntityKind.GROUP)
    if group is not None and not getattr(group, 'is_placeholder', False):
        return group.display_value, 'Group'
    return (user.display_value if user is not None else principal_id), 'Unknown'


def export_role_assignments(api_client, resolver: IdentityResolver = None,
                            progress_callback=None) -> List[RoleAssignmentRow]:
    """Export every active and eligible directory role assignment as flat rows.

    Role names come from the tenant's role definitions; any role definition
    missing from that listing is resolved individually through the resolver.

    Parameters:
        api_client: Directory query service
        resolver (IdentityResolver, optional): Shared resolver (default: new one)
        progress_callback (callable, optional): Callback function(percent, message)

    Returns:
        List[RoleAssignmentRow]: Active rows first, then eligible rows, each sorted by role

    Raises:
        SourceFetchError: If any of the listings cannot be fetched
    """
    resolver = resolver or IdentityResolver(api_client)

    role_definitions = api_client.list_all('roleDefinitions')
    resolver.seed(EntityKind.DIRECTORY_ROLE, {
        (definition.get('templateId') or definition.get('id')): definition.get('displayName')
        for definition in role_definitions
    })

    active = api_client.list_all('roleAssignments')
    eligible = api_client.list_all('roleEligibilities')
    if progress_callback:
        progress_callback(None, f"✓ Fetched {len(active)} active and {len(eligible)} eligible role assignments")

    rows = []
    for assignment_type, records in (('Active', active), ('Eligible', eligible)):
        section = []
        for record in records:
            role = resolver.resolve(record.get('roleDefinitionId'), EntityKind.DIRECTORY_ROLE)
            principal, principal_type = _describe_principal(record, resolver)
            section.append(RoleAssignmentRow(
                role=role.display_value if hasattr(role, 'display_value') else str(role),
                principal=principal,
                principal_type=principal_type,
                principal_id=record.get('principalId'),
                assignment_type=assignment_type,
                member_type=record.get('memberType'),
                start=record.get('startDateTime'),
                end=record.get('endDateTime'),
                directory_scope=record.get('directoryScopeId') or '/'
            ))
        section.sort(key=lambda row: (row.role.lower(), (row.principal or '').lower()))
        rows.extend(section)

    return rows
