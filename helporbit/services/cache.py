"""
Caching and cache invalidation

- ``TTLCache``: small in-process cache with an injectable clock, used for
  the per-organization member directory.
- ``CacheTags``: tag names for every cached entity.
- ``Revalidator``: tag/path revalidation. Listeners subscribed to a tag
  prefix run whenever a matching tag is revalidated.
"""
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Generic, List, Optional, Tuple, TypeVar

from helporbit.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    Key/value cache where every entry expires ``ttl_seconds`` after it was set.

    ``clock`` returns seconds as a float; tests pass a fake clock instead of sleeping.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic, maxsize: int = 1024):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._entries: Dict[str, Tuple[float, T]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.maxsize:
                # Drop the oldest entry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "maxsize": self.maxsize,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }


class CacheTags:
    """Central cache tag names"""

    # User related
    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_organizations(user_id: str) -> str:
        return f"user-organizations:{user_id}"

    @staticmethod
    def user_role(user_id: str, organization_id: str) -> str:
        return f"user-role:{user_id}:{organization_id}"

    # Organization related
    ORGANIZATIONS = "organizations"

    @staticmethod
    def organization(organization_id: str) -> str:
        return f"organization:{organization_id}"

    @staticmethod
    def organization_slug(slug: str) -> str:
        return f"organization-slug:{slug}"

    # Ticket related
    ALL_TICKETS = "all-tickets"

    @staticmethod
    def ticket(ticket_id: str) -> str:
        return f"ticket:{ticket_id}"

    @staticmethod
    def tickets(organization_id: str) -> str:
        return f"tickets:{organization_id}"

    @staticmethod
    def ticket_stats(organization_id: str) -> str:
        return f"ticket-stats:{organization_id}"

    # Member and invitation related
    @staticmethod
    def members(organization_id: str) -> str:
        return f"members:{organization_id}"

    @staticmethod
    def member(user_id: str, organization_id: str) -> str:
        return f"member:{user_id}:{organization_id}"

    @staticmethod
    def invitations(organization_id: str) -> str:
        return f"invitations:{organization_id}"


class Revalidator:
    """Dispatches tag and path revalidation to subscribed listeners"""

    def __init__(self, history_size: int = 200):
        self._listeners: List[Tuple[str, Callable[[str], None]]] = []
        self.history: Deque[str] = deque(maxlen=history_size)

    def subscribe(self, prefix: str, callback: Callable[[str], None]) -> None:
        self._listeners.append((prefix, callback))

    def revalidate_tag(self, tag: str) -> None:
        self.history.append(f"tag:{tag}")
        for prefix, callback in self._listeners:
            if tag.startswith(prefix):
                callback(tag)

    def revalidate_path(self, path: str) -> None:
        self.history.append(f"path:{path}")
        logger.debug("Revalidated path %s", path)


# Member directory cache, keyed by organization id
member_cache: TTLCache[List[dict]] = TTLCache(ttl_seconds=settings.MEMBER_CACHE_TTL_SECONDS)

revalidator = Revalidator()
revalidator.subscribe("members:", lambda tag: member_cache.invalidate(tag.split(":", 1)[1]))


def revalidate_user_cache(user_id: str) -> None:
    revalidator.revalidate_tag(CacheTags.user(user_id))
    revalidator.revalidate_tag(CacheTags.user_organizations(user_id))
    revalidator.revalidate_tag(CacheTags.ORGANIZATIONS)


def revalidate_organization_cache(organization_id: str, slug: Optional[str] = None) -> None:
    revalidator.revalidate_tag(CacheTags.organization(organization_id))
    revalidator.revalidate_tag(CacheTags.ORGANIZATIONS)
    if slug:
        revalidator.revalidate_tag(CacheTags.organization_slug(slug))
    revalidator.revalidate_tag(CacheTags.tickets(organization_id))
    revalidator.revalidate_tag(CacheTags.ticket_stats(organization_id))
    revalidator.revalidate_tag(CacheTags.members(organization_id))
    revalidator.revalidate_tag(CacheTags.invitations(organization_id))


def revalidate_ticket_cache(organization_id: str, ticket_id: Optional[str] = None) -> None:
    revalidator.revalidate_tag(CacheTags.tickets(organization_id))
    revalidator.revalidate_tag(CacheTags.ticket_stats(organization_id))
    revalidator.revalidate_tag(CacheTags.ALL_TICKETS)
    if ticket_id:
        revalidator.revalidate_tag(CacheTags.ticket(ticket_id))


def revalidate_member_cache(organization_id: str, user_id: Optional[str] = None) -> None:
    revalidator.revalidate_tag(CacheTags.members(organization_id))
    if user_id:
        revalidator.revalidate_tag(CacheTags.member(user_id, organization_id))
        revalidator.revalidate_tag(CacheTags.user_organizations(user_id))
        revalidator.revalidate_tag(CacheTags.user_role(user_id, organization_id))


def revalidate_invitation_cache(organization_id: str) -> None:
    revalidator.revalidate_tag(CacheTags.invitations(organization_id))


def revalidate_common_paths(organization_slug: Optional[str] = None) -> None:
    if organization_slug:
        for suffix in ("", "/dashboard", "/dashboard/tickets", "/dashboard/members", "/dashboard/settings"):
            revalidator.revalidate_path(f"/org/{organization_slug}{suffix}")
    revalidator.revalidate_path("/select-organization")
