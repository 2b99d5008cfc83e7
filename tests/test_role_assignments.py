from entraAudit.analyzer.role_assignments import export_role_assignments


def test_export_active_then_eligible(directory):
    directory.collections.update({
        'roleDefinitions': [
            {'id': 'def-ga', 'templateId': 'role-ga', 'displayName': 'Global Administrator'},
            {'id': 'def-ur', 'templateId': 'role-ur', 'displayName': 'User Administrator'},
        ],
        'roleAssignments': [
            {
                'roleDefinitionId': 'role-ur',
                'principalId': 'u2',
                'memberType': 'Direct',
                'directoryScopeId': '/',
                'principal': {'@odata.type': '#microsoft.graph.user', 'displayName': 'Bob',
                              'userPrincipalName': 'bob@contoso.com'},
            },
            {
                'roleDefinitionId': 'role-ga',
                'principalId': 'sp1',
                'memberType': 'Direct',
                'principal': {'@odata.type': '#microsoft.graph.servicePrincipal', 'displayName': 'Automation'},
            },
        ],
        'roleEligibilities': [
            {
                'roleDefinitionId': 'role-ga',
                'principalId': 'u1',
                'memberType': 'Direct',
                'startDateTime': '2025-01-01T00:00:00Z',
                'endDateTime': '2025-12-31T00:00:00Z',
            },
        ],
    })

    rows = export_role_assignments(directory)

    assert [(r.assignment_type, r.role, r.principal, r.principal_type) for r in rows] == [
        ('Active', 'Global Administrator', 'Automation', 'ServicePrincipal'),
        ('Active', 'User Administrator', 'bob@contoso.com', 'User'),
        ('Eligible', 'Global Administrator', 'alice@contoso.com', 'User'),
    ]
    assert rows[0].directory_scope == '/'
    assert rows[2].end == '2025-12-31T00:00:00Z'
    # Role names come from the bulk listing
    assert not any(kind == 'DirectoryRole' for kind, _ in directory.calls)


def test_principal_without_expansion_falls_back_to_group(directory):
    directory.collections.update({
        'roleAssignments': [{'roleDefinitionId': 'role-custom', 'principalId': 'g1'}],
    })

    rows = export_role_assignments(directory)

    assert len(rows) == 1
    assert rows[0].principal == 'Finance'
    assert rows[0].principal_type == 'Group'
    assert rows[0].role == 'UnknownDirectoryRole(role-custom)'
