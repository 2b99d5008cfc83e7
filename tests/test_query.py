import pytest

from entraAudit.analyzer.assembler import PolicyAssembler
from entraAudit.analyzer.locations import CountryTable
from entraAudit.analyzer.query import Scope, find_by_app, find_by_country, find_by_group, find_by_role, find_by_user
from entraAudit.errors import PatternNotRecognizedError


@pytest.fixture
def config(directory):
    policies = [
        {
            'id': 'p-hr',
            'displayName': 'HR access',
            'state': 'enabled',
            'conditions': {
                'users': {
                    'includeGroups': ['g-hr-admins'],
                    'excludeGroups': ['g-hr-contractors'],
                    'includeUsers': ['u1'],
                },
                'applications': {'includeApplications': ['app-exo']},
                'locations': {'includeLocations': ['loc-na'], 'excludeLocations': ['loc-eu']},
            },
        },
        {
            'id': 'p-admins',
            'displayName': 'Admins MFA',
            'state': 'enabledForReportingButNotEnforced',
            'conditions': {
                'users': {'includeRoles': ['role-ga'], 'excludeUsers': ['u2']},
                'applications': {'includeApplications': ['All']},
                'locations': {'includeLocations': ['All'], 'excludeLocations': ['loc-na']},
            },
        },
    ]
    named_locations = [
        {'id': 'loc-na', 'displayName': 'North America', 'countriesAndRegions': ['US', 'CA']},
        {'id': 'loc-eu', 'displayName': 'Europe', 'countriesAndRegions': ['FR', 'DE']},
    ]
    return PolicyAssembler(directory).assemble(policies, named_locations, [])


def test_both_scopes_label(config):
    matches = find_by_group('HR*', Scope.BOTH, config)

    assert len(matches) == 1
    assert matches[0].policy_id == 'p-hr'
    assert matches[0].scope == 'Include, Exclude'
    assert matches[0].matched == ['HR-Admins', 'HR-Contractors']


def test_single_scope(config):
    include = find_by_group('hr*', 'include', config)
    exclude = find_by_group('HR-C*', Scope.EXCLUDE, config)

    assert [(m.scope, m.matched) for m in include] == [('Include', ['HR-Admins'])]
    assert [(m.scope, m.matched) for m in exclude] == [('Exclude', ['HR-Contractors'])]
    assert find_by_group('HR-C*', Scope.INCLUDE, config) == []


def test_user_app_and_role_searches(config):
    assert [m.policy_id for m in find_by_user('*@contoso.com', Scope.BOTH, config)] == ['p-hr', 'p-admins']
    assert [m.policy_id for m in find_by_app('office 365*', Scope.INCLUDE, config)] == ['p-hr']
    assert [m.policy_id for m in find_by_app('All', Scope.INCLUDE, config)] == ['p-admins']
    assert find_by_role('Global*', Scope.BOTH, config)[0].matched == ['Global Administrator']


def test_invalid_scope_rejected(config):
    with pytest.raises(ValueError):
        find_by_group('*', 'sideways', config)


def test_country_search(config):
    matches = find_by_country('united states', Scope.BOTH, config)

    assert [(m.policy_id, m.scope, m.matched) for m in matches] == [
        ('p-hr', 'Include', ['United States']),
        ('p-admins', 'Exclude', ['United States']),
    ]


def test_country_search_lists_only_matching_countries(config):
    matches = find_by_country('*a*', Scope.EXCLUDE, config)
    by_policy = {m.policy_id: m.matched for m in matches}

    assert by_policy['p-hr'] == ['France', 'Germany']
    assert by_policy['p-admins'] == ['United States', 'Canada']


def test_country_search_with_substitute_table(directory):
    table = CountryTable({'US': 'Freedonia', 'CA': 'Canada'})
    policies = [{
        'id': 'p1',
        'displayName': 'Block Freedonia',
        'state': 'enabled',
        'conditions': {'locations': {'includeLocations': ['loc-na']}},
    }]
    config = PolicyAssembler(directory, country_table=table).assemble(
        policies, [{'id': 'loc-na', 'countriesAndRegions': ['US', 'CA']}], []
    )

    matches = find_by_country('freedonia', Scope.INCLUDE, config, table)
    assert [(m.policy_id, m.matched) for m in matches] == [('p1', ['Freedonia'])]


def test_unrecognized_country_pattern(config):
    with pytest.raises(PatternNotRecognizedError) as exc_info:
        find_by_country('Atlantis', Scope.BOTH, config)
    assert exc_info.value.pattern == 'Atlantis'


def test_country_search_labels_both_sides(directory):
    policies = [{
        'id': 'p1',
        'displayName': 'Split',
        'state': 'enabled',
        'conditions': {'locations': {'includeLocations': ['loc-us'], 'excludeLocations': ['loc-ca', 'AllTrusted']}},
    }]
    named_locations = [
        {'id': 'loc-us', 'countriesAndRegions': ['US']},
        {'id': 'loc-ca', 'countriesAndRegions': ['CA']},
    ]
    config = PolicyAssembler(directory).assemble(policies, named_locations, [])

    matches = find_by_country('*a*', Scope.BOTH, config)

    assert [(m.scope, m.matched) for m in matches] == [('Include, Exclude', ['United States', 'Canada'])]


def test_country_search_rejects_invalid_scope(config):
    with pytest.raises(ValueError):
        find_by_country('France', 'sideways', config)
