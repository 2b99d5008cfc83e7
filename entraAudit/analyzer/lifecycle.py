"""
User lifecycle queries
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .credentials import parse_datetime


@dataclass(frozen=True)
class StaleGuest:
    id: str
    display_name: str
    user_principal_name: str
    mail: Optional[str]
    last_sign_in: Optional[datetime]
    created: Optional[datetime]
    days_inactive: Optional[int]
    never_signed_in: bool


def find_stale_guests(guests: List[Dict], stale_days: int, now: datetime = None) -> List[StaleGuest]:
    """Find guest accounts without a sign-in during the last stale_days days.

    Guests that never signed in are measured from their creation date; guests
    with neither timestamp are reported as inactive since an unknown date.

    Parameters:
        guests (List[Dict]): Guest user objects (with signInActivity when available)
        stale_days (int): Inactivity threshold in days
        now (datetime, optional): Reference time (default: current UTC time)

    Returns:
        List[StaleGuest]: Oldest activity first
    """
    if stale_days < 1:
        raise ValueError("stale_days must be at least 1")

    now = now or datetime.now(timezone.utc)
    threshold = now - timedelta(days=stale_days)
    stale = []

    for guest in guests or []:
        activity = guest.get('signInActivity') or {}
        last_sign_in = parse_datetime(activity.get('lastSignInDateTime'))
        created = parse_datetime(guest.get('createdDateTime'))
        reference = last_sign_in or created

        if reference is not None and reference > threshold:
            continue

        stale.append(StaleGuest(
            id=guest.get('id'),
            display_name=guest.get('displayName'),
            user_principal_name=guest.get('userPrincipalName'),
            mail=guest.get('mail'),
            last_sign_in=last_sign_in,
            created=created,
            days_inactive=(now - reference).days if reference else None,
            never_signed_in=last_sign_in is None
        ))

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    stale.sort(key=lambda g: g.last_sign_in or g.created or epoch)
    return stale
