"""
Identity resolution for directory object IDs referenced by Conditional Access policies.

Resolves opaque object IDs to human-readable display values, memoizing every
result for the lifetime of the resolver. Each entity kind has its own cache
partition, and a given (kind, id) pair is looked up at most once even when
policies are assembled from several worker threads.
"""

from collections import defaultdict
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Dict, List, Optional, Union


# Reserved Conditional Access keywords that are not directory objects
SENTINEL_TOKENS = {
    'All', 'None', 'GuestsOrExternalUsers', 'AllTrusted', 'Office365',
    'AllAgentIdResources', 'MicrosoftAdminPortals', 'unknownFutureValue'
}


class EntityKind(str, Enum):
    """Kinds of directory objects, one cache partition each"""
    USER = 'User'
    GROUP = 'Group'
    APPLICATION = 'Application'
    DIRECTORY_ROLE = 'DirectoryRole'
    NAMED_LOCATION = 'NamedLocation'
    TERMS_OF_USE = 'TermsOfUse'
    TENANT = 'Tenant'


# Kinds whose partitions are filled in bulk and never looked up individually
PRESEEDED_KINDS = {EntityKind.NAMED_LOCATION, EntityKind.TERMS_OF_USE}


@dataclass(frozen=True)
class ResolvedEntity:
    kind: EntityKind
    id: str
    display_value: str

    @property
    def is_placeholder(self) -> bool:
        return self.display_value == placeholder(self.kind, self.id)


def placeholder(kind: EntityKind, object_id: str) -> str:
    """Display value used when an object cannot be resolved, e.g. 'UnknownUser(<id>)'."""
    return f"Unknown{kind.value}({object_id})"


def sentinel_token(value) -> Optional[str]:
    """Return the canonical sentinel token for value, or None if it is a real ID.

    Matching is exact, or case-insensitive on the first letter ('all' -> 'All').
    """
    if not isinstance(value, str):
        return None
    if value in SENTINEL_TOKENS:
        return value
    capitalized = value[:1].upper() + value[1:]
    if capitalized in SENTINEL_TOKENS:
        return capitalized
    return None


class IdentityResolver:
    """Memoizing resolver from directory object IDs to display values"""

    def __init__(self, api_client):
        """Initialize an empty resolver.

        Parameters:
            api_client: Directory query service exposing get_by_id(kind, id) and
                        resolve_tenant(tenant_id)
        """
        self.api_client = api_client
        self._partitions: Dict[EntityKind, Dict[str, ResolvedEntity]] = {kind: {} for kind in EntityKind}
        self._inflight: Dict[tuple, Future] = {}
        self._lock = Lock()
        self.lookup_count: Dict[tuple, int] = defaultdict(int)

    def seed(self, kind: EntityKind, names: Dict[str, str]) -> None:
        """Pre-populate a partition from a bulk listing.

        Parameters:
            kind (EntityKind): Partition to fill
            names (Dict[str, str]): Mapping of object ID to display name
        """
        with self._lock:
            partition = self._partitions[kind]
            for object_id, name in names.items():
                if object_id:
                    partition[object_id] = ResolvedEntity(kind, object_id, name or placeholder(kind, object_id))

    def cached(self, kind: EntityKind) -> Dict[str, ResolvedEntity]:
        """Return a snapshot of one partition."""
        with self._lock:
            return dict(self._partitions[kind])

    def resolve(self, object_id: Optional[str], kind: EntityKind) -> Union[ResolvedEntity, str, None]:
        """Resolve an object ID to its display value.

        Parameters:
            object_id (str): Directory object ID or reserved keyword
            kind (EntityKind): Which kind of object the ID refers to

        Returns:
            None for an empty ID, the keyword itself for a reserved keyword,
            otherwise a ResolvedEntity (with an Unknown<Kind>(<id>) placeholder
            when the lookup fails)
        """
        if not object_id:
            return None

        token = sentinel_token(object_id)
        if token:
            return token

        key = (kind, object_id)
        with self._lock:
            entity = self._partitions[kind].get(object_id)
            if entity is not None:
                return entity

            # Pre-seeded kinds never trigger an external call
            if kind in PRESEEDED_KINDS:
                entity = ResolvedEntity(kind, object_id, placeholder(kind, object_id))
                self._partitions[kind][object_id] = entity
                return entity

            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            return future.result()

        entity = ResolvedEntity(kind, object_id, self._lookup(kind, object_id))
        with self._lock:
            self._partitions[kind][object_id] = entity
            del self._inflight[key]
        future.set_result(entity)
        return entity

    def resolve_many(self, object_ids: Optional[List[str]], kind: EntityKind) -> List[Union[ResolvedEntity, str]]:
        """Resolve a list of IDs element-wise, keeping input order.

        Empty entries are skipped.
        """
        resolved = []
        for object_id in object_ids or []:
            value = self.resolve(object_id, kind)
            if value is not None:
                resolved.append(value)
        return resolved

    def _lookup(self, kind: EntityKind, object_id: str) -> str:
        """Perform the single external lookup for a cache miss.

        Never raises: failures and missing objects produce the placeholder.
        """
        with self._lock:
            self.lookup_count[(kind, object_id)] += 1

        try:
            if kind == EntityKind.TENANT:
                return self.api_client.resolve_tenant(object_id) or placeholder(kind, object_id)

            obj = self.api_client.get_by_id(kind.value, object_id)
            if not obj:
                return placeholder(kind, object_id)

            if kind == EntityKind.USER:
                name = obj.get('userPrincipalName') or obj.get('displayName')
            else:
                name = obj.get('displayName')
            return name or placeholder(kind, object_id)
        except Exception as e:
            print(f"[WARN] Failed to resolve {kind.value} {object_id}: {e}")
            return placeholder(kind, object_id)
