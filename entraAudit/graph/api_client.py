"""
Microsoft Graph API client for fetching directory objects and Conditional Access configuration
"""

# Standard library imports
import time
import urllib3
from typing import List, Dict, Optional, Callable, Tuple

# Third-party imports
import requests

# Local imports
from ..errors import SourceFetchError


# Collection endpoints served by list_all(): resource type -> (path, query parameters)
LIST_ENDPOINTS = {
    'policies': ('beta/identity/conditionalAccess/policies', {}),
    'namedLocations': ('v1.0/identity/conditionalAccess/namedLocations', {}),
    'termsOfUse': ('v1.0/identityGovernance/termsOfUse/agreements', {'$select': 'id,displayName'}),
    'applications': ('v1.0/applications', {
        '$select': 'id,appId,displayName,passwordCredentials,keyCredentials'
    }),
    'servicePrincipals': ('v1.0/servicePrincipals', {'$select': 'id,appId,displayName,servicePrincipalType'}),
    'roleAssignments': ('v1.0/roleManagement/directory/roleAssignmentScheduleInstances', {
        '$expand': 'principal'
    }),
    'roleEligibilities': ('v1.0/roleManagement/directory/roleEligibilityScheduleInstances', {
        '$expand': 'principal'
    }),
    'roleDefinitions': ('v1.0/roleManagement/directory/roleDefinitions', {
        '$select': 'id,templateId,displayName,isBuiltIn'
    }),
    'users': ('v1.0/users', {'$select': 'id,displayName,userPrincipalName,userType,accountEnabled'}),
    'guests': ('beta/users', {
        '$filter': "userType eq 'Guest'",
        '$select': 'id,displayName,userPrincipalName,mail,accountEnabled,createdDateTime,signInActivity'
    }),
}


class GraphAPIClient:
    """Client for Microsoft Graph API operations"""

    def __init__(self, token: str, proxy: str = None):
        """Initialize the Graph API client with an access token.

        Parameters:
            token (str): Microsoft Graph access token with appropriate permissions
            proxy (str): Proxy address in format 'host:port' (e.g., '127.0.0.1:8080').
                        If provided, routes all requests through proxy without cert verification.
        """
        self.token = token
        self.msgraph_domain = "graph.microsoft.com"

        # Proxy configuration for debugging (e.g., Burp Suite)
        if proxy:
            self.proxies = {
                'http': f'http://{proxy}',
                'https': f'http://{proxy}'
            }
            self.verify_ssl = False
            # Suppress SSL warnings when using proxy
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        else:
            self.proxies = None
            self.verify_ssl = True

        # HTTP Session for connection pooling (reuse TCP connections)
        self.session = requests.Session()
        self.session.proxies = self.proxies
        self.session.verify = self.verify_ssl
        self.session.headers.update({
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json"
        })

    @staticmethod
    def _retry_on_failure(func: Callable, max_attempts: int = 3, delay: float = 1.0, skip_on_404: bool = True):
        """Execute a function with retry logic.

        Wraps a function call with retry logic that:
        - Retries up to max_attempts times
        - Skips retries on 404 errors (if skip_on_404 is True)
        - Adds delay between retry attempts
        - Re-raises the last exception if all retries fail

        Parameters:
            func (Callable): The function to execute (should return requests.Response)
            max_attempts (int): Maximum number of attempts (default: 3)
            delay (float): Delay in seconds between retries (default: 1.0)
            skip_on_404 (bool): If True, don't retry on 404 errors (default: True)

        Returns:
            requests.Response: The successful response

        Raises:
            Exception: The last exception encountered if all retries fail
        """
        for attempt in range(max_attempts):
            try:
                response = func()
                response.raise_for_status()
                return response
            except requests.exceptions.HTTPError as e:
                if skip_on_404 and e.response is not None and e.response.status_code == 404:
                    # Resource doesn't exist, no point retrying
                    raise
                if attempt < max_attempts - 1:
                    status = e.response.status_code if e.response is not None else '?'
                    print(f"    HTTP error (attempt {attempt + 1}/{max_attempts}): {status}, retrying in {delay}s...")
                    time.sleep(delay)
                    continue
                raise
            except requests.exceptions.Timeout:
                if attempt < max_attempts - 1:
                    print(f"    Request timed out (attempt {attempt + 1}/{max_attempts}), retrying in {delay}s...")
                    time.sleep(delay)
                    continue
                raise
            except requests.exceptions.RequestException as e:
                if attempt < max_attempts - 1:
                    print(f"    Request failed (attempt {attempt + 1}/{max_attempts}): {type(e).__name__}, retrying in {delay}s...")
                    time.sleep(delay)
                    continue
                raise

    def _url(self, path: str) -> str:
        return f"https://{self.msgraph_domain}/{path}"

    def validate_token(self) -> Tuple[bool, str]:
        """Validate the access token by making a test API call.

        Tests the token by attempting to read the organization object. Provides
        detailed error messages for common token issues including invalid tokens,
        missing permissions, and network problems.

        Returns:
            tuple[bool, str]: A tuple containing:
                - bool: True if token is valid and has permissions, False otherwise
                - str: Error message if validation failed, empty string if successful
        """
        try:
            response = self.session.get(self._url("v1.0/organization?$select=id"), timeout=10)

            if response.status_code == 401:
                return False, "Invalid or expired access token. Please provide a valid Microsoft Graph access token."
            elif response.status_code == 403:
                return False, "Access token is valid but lacks required permissions. Ensure the token has Directory.Read.All and Policy.Read.All permissions."
            elif response.status_code >= 400:
                return False, f"Token validation failed with status {response.status_code}: {response.text}"

            return True, ""
        except requests.exceptions.Timeout:
            return False, "Token validation timed out. Check your network connection."
        except requests.exceptions.RequestException as e:
            return False, f"Token validation failed: {str(e)}"

    def _get_paged(self, url: str, params: Dict = None, headers: Dict = None) -> List[Dict]:
        """Follow @odata.nextLink until the collection is exhausted.

        Parameters:
            url (str): Full URL of the first page
            params (Dict, optional): Query parameters for the first page only
                                     (nextLink already carries the query)
            headers (Dict, optional): Extra request headers

        Returns:
            List[Dict]: All items across pages

        Raises:
            requests.RequestException: If any page fails after retries
        """
        items = []

        while url:
            response = self._retry_on_failure(
                lambda: self.session.get(url, params=params, headers=headers, timeout=30),
                skip_on_404=False
            )
            data = response.json()

            items.extend(data.get('value', []))
            url = data.get('@odata.nextLink')
            params = None

        return items

    def list_all(self, resource_type: str, filter_query: str = None) -> List[Dict]:
        """Fetch a complete directory collection.

        Parameters:
            resource_type (str): One of the keys of LIST_ENDPOINTS ('policies',
                                 'namedLocations', 'termsOfUse', 'applications', ...)
            filter_query (str, optional): OData filter expression combined with the
                                          endpoint's own filter

        Returns:
            List[Dict]: Raw records of the collection

        Raises:
            ValueError: If the resource type is unknown
            SourceFetchError: If the collection cannot be fetched
        """
        if resource_type not in LIST_ENDPOINTS:
            raise ValueError(f"Unknown resource type: {resource_type}")

        path, base_params = LIST_ENDPOINTS[resource_type]
        params = dict(base_params)
        if filter_query:
            if '$filter' in params:
                params['$filter'] = f"({params['$filter']}) and ({filter_query})"
            else:
                params['$filter'] = filter_query

        try:
            return self._get_paged(self._url(path), params=params or None)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                raise SourceFetchError(resource_type, ValueError("Invalid or expired access token")) from e
            if status == 403:
                raise SourceFetchError(resource_type, ValueError("Access denied, the token lacks required permissions")) from e
            raise SourceFetchError(resource_type, e) from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise SourceFetchError(resource_type, e) from e

    def get_by_id(self, kind: str, object_id: str) -> Optional[Dict]:
        """Look up a single directory object of the given kind.

        Users and groups are fetched by object ID, applications by appId
        (through their service principal), directory roles by template ID
        (matching both built-in and custom role definitions).

        Parameters:
            kind (str): 'User', 'Group', 'Application' or 'DirectoryRole'
            object_id (str): The identifier to look up

        Returns:
            Optional[Dict]: The object, or None if it does not exist

        Raises:
            ValueError: If the kind has no individual lookup
            requests.RequestException: For any failure other than not-found
        """
        if kind == 'User':
            return self._get_single(f"v1.0/users/{object_id}", {'$select': 'id,displayName,userPrincipalName'})
        if kind == 'Group':
            return self._get_single(f"v1.0/groups/{object_id}", {'$select': 'id,displayName'})
        if kind == 'Application':
            return self._get_first(
                "v1.0/servicePrincipals",
                {'$filter': f"appId eq '{object_id}'", '$select': 'id,appId,displayName'}
            )
        if kind == 'DirectoryRole':
            return self._get_first(
                "v1.0/roleManagement/directory/roleDefinitions",
                {'$filter': f"templateId eq '{object_id}'", '$select': 'id,templateId,displayName'}
            )
        raise ValueError(f"No individual lookup for kind: {kind}")

    def _get_single(self, path: str, params: Dict) -> Optional[Dict]:
        try:
            response = self._retry_on_failure(
                lambda: self.session.get(self._url(path), params=params, timeout=10)
            )
            return response.json()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                # Object deleted
                return None
            raise

    def _get_first(self, path: str, params: Dict) -> Optional[Dict]:
        response = self._retry_on_failure(
            lambda: self.session.get(self._url(path), params=params, timeout=10)
        )
        values = response.json().get('value', [])
        return values[0] if values else None

    def resolve_tenant(self, tenant_id: str) -> str:
        """Resolve an external tenant ID to its display name.

        Parameters:
            tenant_id (str): The tenant GUID

        Returns:
            str: The tenant display name (or default domain when unnamed)

        Raises:
            requests.RequestException: If the lookup fails
        """
        path = f"v1.0/tenantRelationships/findTenantInformationByTenantId(tenantId='{tenant_id}')"
        response = self._retry_on_failure(
            lambda: self.session.get(self._url(path), timeout=10)
        )
        data = response.json()
        return data.get('displayName') or data.get('defaultDomainName') or tenant_id

    def create_role_assignment(self, principal_id: str, role_definition_id: str, directory_scope_id: str = '/') -> Dict:
        """Create an active directory role assignment.

        Writes are issued once, without retry.

        Parameters:
            principal_id (str): Object ID of the user, group or service principal
            role_definition_id (str): ID of the role definition to assign
            directory_scope_id (str): Scope of the assignment (default: '/', tenant-wide)

        Returns:
            Dict: The created assignment

        Raises:
            requests.HTTPError: If the request is rejected
        """
        response = self.session.post(
            self._url("v1.0/roleManagement/directory/roleAssignments"),
            json={
                'principalId': principal_id,
                'roleDefinitionId': role_definition_id,
                'directoryScopeId': directory_scope_id
            },
            timeout=30
        )
        response.raise_for_status()
        return response.json()

    def delete_user(self, user_id: str) -> None:
        """Delete a user account (moves it to deleted items).

        Raises:
            requests.HTTPError: If the request is rejected
        """
        response = self.session.delete(self._url(f"v1.0/users/{user_id}"), timeout=30)
        response.raise_for_status()
