"""
Shared fixtures: an in-memory stand-in for the Graph directory client.
"""

import threading
import time
from collections import Counter

import pytest
import requests

from entraAudit.errors import SourceFetchError


class FakeDirectory:
    """In-memory directory exposing the same methods as GraphAPIClient.

    objects: {kind: {id: record}}; collections: {resource_type: [records]}.
    A collection mapped to an Exception instance raises it from list_all().
    """

    def __init__(self, objects=None, collections=None, tenants=None, lookup_delay=0.0):
        self.objects = objects or {}
        self.collections = collections or {}
        self.tenants = tenants or {}
        self.lookup_delay = lookup_delay
        self.calls = Counter()
        self.created = []
        self.deleted = []
        self.fail_writes = set()
        self._lock = threading.Lock()

    def get_by_id(self, kind, object_id):
        with self._lock:
            self.calls[(kind, object_id)] += 1
        if self.lookup_delay:
            time.sleep(self.lookup_delay)
        return self.objects.get(kind, {}).get(object_id)

    def resolve_tenant(self, tenant_id):
        with self._lock:
            self.calls[('Tenant', tenant_id)] += 1
        return self.tenants.get(tenant_id)

    def list_all(self, resource_type, filter_query=None):
        value = self.collections.get(resource_type, [])
        if isinstance(value, Exception):
            raise value
        return list(value)

    def create_role_assignment(self, principal_id, role_definition_id, directory_scope_id='/'):
        if principal_id in self.fail_writes:
            raise _http_error(400, 'Invalid principal')
        self.created.append((principal_id, role_definition_id, directory_scope_id))
        return {'id': f'assignment-{len(self.created)}'}

    def delete_user(self, user_id):
        if user_id in self.fail_writes:
            raise _http_error(404, 'Resource not found')
        self.deleted.append(user_id)


def _http_error(status, message):
    response = requests.Response()
    response.status_code = status
    response.reason = 'Error'
    response._content = ('{"error": {"message": "%s"}}' % message).encode()
    return requests.exceptions.HTTPError(f"{status} Error", response=response)


@pytest.fixture
def directory():
    return FakeDirectory(
        objects={
            'User': {
                'u1': {'id': 'u1', 'displayName': 'Alice', 'userPrincipalName': 'alice@contoso.com'},
                'u2': {'id': 'u2', 'displayName': 'Bob', 'userPrincipalName': 'bob@contoso.com'},
                'u3': {'id': 'u3', 'displayName': 'Carol'},
            },
            'Group': {
                'g1': {'id': 'g1', 'displayName': 'Finance'},
                'g-hr-admins': {'id': 'g-hr-admins', 'displayName': 'HR-Admins'},
                'g-hr-contractors': {'id': 'g-hr-contractors', 'displayName': 'HR-Contractors'},
            },
            'Application': {
                'app-exo': {'appId': 'app-exo', 'displayName': 'Office 365 Exchange Online'},
            },
            'DirectoryRole': {
                'role-ga': {'templateId': 'role-ga', 'displayName': 'Global Administrator'},
            },
        },
        tenants={'t-partner': 'Fabrikam'}
    )


@pytest.fixture
def failing_source():
    return FakeDirectory(collections={
        'policies': SourceFetchError('policies', ValueError('Access denied')),
    })


@pytest.fixture
def make_http_error():
    return _http_error
