"""
Bulk write operations with per-record outcome tracking.

Each record is written with its own request; a failure is recorded against
that record and the run continues with the next one.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests


@dataclass(frozen=True)
class WriteResult:
    record: Any
    success: bool
    error: Optional[str] = None


@dataclass
class WriteSummary:
    results: List[WriteResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def failures(self) -> List[WriteResult]:
        return [result for result in self.results if not result.success]


def _error_message(error: Exception) -> str:
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        try:
            detail = error.response.json().get('error', {}).get('message')
        except ValueError:
            detail = None
        return f"HTTP {error.response.status_code}: {detail or error.response.reason}"
    return f"{type(error).__name__}: {error}"


def _apply(records: List, write: Callable, progress_callback=None, label: str = 'record') -> WriteSummary:
    summary = WriteSummary()
    for record in records:
        try:
            write(record)
            summary.results.append(WriteResult(record=record, success=True))
        except Exception as e:
            # Every record gets its own outcome
            message = _error_message(e)
            print(f"[WARN] Failed to process {label} {record}: {message}")
            summary.results.append(WriteResult(record=record, success=False, error=message))

    if progress_callback:
        progress_callback(None, f"✓ {summary.succeeded} {label}(s) succeeded, {summary.failed} failed")
    return summary


def create_role_assignments(api_client, assignments: List[Dict], progress_callback=None) -> WriteSummary:
    """Create active role assignments, one request per record.

    Parameters:
        api_client: GraphAPIClient (or compatible) exposing create_role_assignment()
        assignments (List[Dict]): Records with principalId, roleDefinitionId and
                                  optional directoryScopeId

    Returns:
        WriteSummary: Per-record results and tallies
    """
    def write(record):
        if not isinstance(record, dict):
            raise ValueError(f"Assignment must be an object, got {type(record).__name__}")
        if not record.get('principalId') or not record.get('roleDefinitionId'):
            raise ValueError("principalId and roleDefinitionId are required")
        api_client.create_role_assignment(
            record['principalId'],
            record['roleDefinitionId'],
            record.get('directoryScopeId') or '/'
        )

    return _apply(assignments, write, progress_callback, label='role assignment')


def remove_users(api_client, user_ids: List[str], progress_callback=None) -> WriteSummary:
    """Delete user accounts (e.g. stale guests), one request per user."""
    return _apply(user_ids, api_client.delete_user, progress_callback, label='user')
