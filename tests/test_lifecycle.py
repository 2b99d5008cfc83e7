from datetime import datetime, timezone

import pytest

from entraAudit.analyzer.lifecycle import find_stale_guests

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def guest(guest_id, last_sign_in=None, created=None):
    record = {
        'id': guest_id,
        'displayName': guest_id.title(),
        'userPrincipalName': f'{guest_id}_fabrikam.com#EXT#@contoso.onmicrosoft.com',
        'mail': f'{guest_id}@fabrikam.com',
        'createdDateTime': created,
    }
    if last_sign_in is not None:
        record['signInActivity'] = {'lastSignInDateTime': last_sign_in}
    return record


def test_stale_guests_oldest_first():
    guests = [
        guest('recent', last_sign_in='2025-05-20T00:00:00Z', created='2024-01-01T00:00:00Z'),
        guest('old', last_sign_in='2024-12-01T00:00:00Z', created='2024-01-01T00:00:00Z'),
        guest('older', last_sign_in='2024-06-01T00:00:00Z', created='2023-01-01T00:00:00Z'),
        guest('never', created='2025-01-01T00:00:00Z'),
    ]

    stale = find_stale_guests(guests, 90, now=NOW)

    assert [g.id for g in stale] == ['older', 'old', 'never']
    assert stale[0].days_inactive == 365
    assert stale[2].never_signed_in is True
    assert stale[0].never_signed_in is False


def test_recently_created_guest_without_sign_in_is_not_stale():
    stale = find_stale_guests([guest('new', created='2025-05-30T00:00:00Z')], 90, now=NOW)
    assert stale == []


def test_guest_without_any_date_is_stale():
    stale = find_stale_guests([guest('ghost')], 30, now=NOW)
    assert [(g.id, g.days_inactive) for g in stale] == [('ghost', None)]


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        find_stale_guests([], 0)
