"""
Credential expiry scanning for application registrations.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from dateutil import parser as dtparser


@dataclass(frozen=True)
class ExpiringCredential:
    app_id: str
    app_object_id: str
    app_name: str
    credential_type: str
    key_id: str
    credential_name: Optional[str]
    end: datetime
    days_remaining: int
    expired: bool


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a Graph timestamp into an aware UTC datetime (None if absent or invalid)."""
    if not value:
        return None
    try:
        parsed = dtparser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _scan_chunk(applications: List[Dict], cutoff: datetime, now: datetime) -> List[ExpiringCredential]:
    found = []
    for app in applications:
        for credential_type, key in (('Secret', 'passwordCredentials'), ('Certificate', 'keyCredentials')):
            for credential in app.get(key) or []:
                end = parse_datetime(credential.get('endDateTime'))
                if end is None or end > cutoff:
                    continue
                found.append(ExpiringCredential(
                    app_id=app.get('appId'),
                    app_object_id=app.get('id'),
                    app_name=app.get('displayName') or app.get('appId'),
                    credential_type=credential_type,
                    key_id=credential.get('keyId'),
                    credential_name=credential.get('displayName'),
                    end=end,
                    days_remaining=(end - now).days,
                    expired=end <= now
                ))
    return found


def find_expiring_credentials(applications: List[Dict], days: int, now: datetime = None,
                              threads: int = 4) -> List[ExpiringCredential]:
    """Find secrets and certificates that expire within the given number of days.

    Already expired credentials are included and flagged. Applications are
    split into one chunk per worker; each worker returns its own list and the
    lists are merged once all workers complete.

    Parameters:
        applications (List[Dict]): Application objects with passwordCredentials/keyCredentials
        days (int): Look-ahead window in days
        now (datetime, optional): Reference time (default: current UTC time)
        threads (int): Number of workers (default: 4)

    Returns:
        List[ExpiringCredential]: Sorted by expiry date, then application name
    """
    if days < 0:
        raise ValueError("days must be zero or positive")

    now = now or datetime.now(timezone.utc)
    cutoff = now + timedelta(days=days)
    applications = applications or []
    workers = max(1, min(threads or 1, len(applications)))

    chunks = [applications[i::workers] for i in range(workers)]
    if workers == 1:
        partials = [_scan_chunk(chunks[0], cutoff, now)]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            partials = list(executor.map(lambda chunk: _scan_chunk(chunk, cutoff, now), chunks))

    merged = [credential for partial in partials for credential in partial]
    merged.sort(key=lambda c: (c.end, (c.app_name or '').lower()))
    return merged
