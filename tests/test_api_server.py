from unittest.mock import patch

import jwt
import pytest

from web import api_server


@pytest.fixture
def app_client(directory):
    directory.validate_token = lambda: (True, '')
    api_server.app.config['TESTING'] = True
    with patch.object(api_server, 'GraphAPIClient', return_value=directory):
        with api_server.app.test_client() as client:
            yield client


def test_missing_token(app_client):
    response = app_client.post('/api/policies', json={})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'No token provided'


def test_extract_tenant_id(app_client):
    token = jwt.encode({'tid': 'tenant-123'}, 'secret', algorithm='HS256')
    response = app_client.post('/api/extract-tenant-id', json={'token': token})
    assert response.get_json() == {'tenant_id': 'tenant-123'}


def test_policies(app_client, directory):
    directory.collections['policies'] = [
        {'id': 'p1', 'displayName': 'MFA', 'state': 'enabled', 'conditions': {'users': {'includeUsers': ['All']}}},
    ]

    response = app_client.post('/api/policies', json={'token': 'token'})

    body = response.get_json()
    assert response.status_code == 200
    assert body['count'] == 1
    assert body['policies'][0]['state'] == 'enabled'
    assert body['policies'][0]['conditions']['include_users'] == ['All']


def test_policies_fetch_failure(app_client, directory):
    directory.collections['policies'] = ConnectionError('reset')
    response = app_client.post('/api/policies', json={'token': 'token'})
    assert response.status_code == 502


def test_search_unknown_country(app_client):
    response = app_client.post('/api/search/country', json={'token': 'token', 'pattern': 'Atlantis'})
    assert response.status_code == 400
    assert response.get_json()['pattern'] == 'Atlantis'


def test_search_group(app_client, directory):
    directory.collections['policies'] = [
        {'id': 'p1', 'displayName': 'Finance', 'state': 'enabled',
         'conditions': {'users': {'includeGroups': ['g1']}}},
    ]

    response = app_client.post('/api/search/group', json={'token': 'token', 'pattern': 'fin*', 'scope': 'include'})

    assert response.get_json()['matches'][0]['matched'] == ['Finance']


def test_search_unknown_kind(app_client):
    response = app_client.post('/api/search/printer', json={'token': 'token', 'pattern': '*'})
    assert response.status_code == 404


def test_create_role_assignments(app_client, directory):
    directory.fail_writes.add('bad')
    response = app_client.post('/api/role-assignments/create', json={
        'token': 'token',
        'assignments': [
            {'principalId': 'u1', 'roleDefinitionId': 'role-ga'},
            {'principalId': 'bad', 'roleDefinitionId': 'role-ga'},
        ],
    })

    body = response.get_json()
    assert body['succeeded'] == 1
    assert body['failed'] == 1
    assert body['results'][1]['error'] == 'HTTP 400: Invalid principal'


def test_create_role_assignments_with_null_record(app_client, directory):
    response = app_client.post('/api/role-assignments/create', json={
        'token': 'token',
        'assignments': [
            {'principalId': 'u1', 'roleDefinitionId': 'role-ga'},
            None,
            {'principalId': 'u3', 'roleDefinitionId': 'role-ga'},
        ],
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body['succeeded'] == 2
    assert body['failed'] == 1
    assert body['results'][1]['record'] is None
    assert directory.created == [('u1', 'role-ga', '/'), ('u3', 'role-ga', '/')]


def test_unrecognized_country_rejected_before_token_check():
    api_server.app.config['TESTING'] = True
    with patch.object(api_server, 'GraphAPIClient') as client_class:
        with api_server.app.test_client() as client:
            response = client.post('/api/search/country', json={'token': 'token', 'pattern': 'Atlantis'})

    assert response.status_code == 400
    client_class.assert_not_called()
