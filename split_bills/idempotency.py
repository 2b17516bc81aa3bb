import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional


class RequestDeduplicator:
    """Remembers request ids for a while so retried AI calls are not billed twice"""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._seen: Dict[str, datetime] = {}

    def check_and_register(self, request_id: str, ttl: timedelta) -> bool:
        """Return True if the id is new (and record it), False for a duplicate."""
        now = self._clock()
        with self._lock:
            self._seen = {key: expiry for key, expiry in self._seen.items() if expiry > now}
            if request_id in self._seen:
                return False
            self._seen[request_id] = now + ttl
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def release(self, request_id: str) -> None:
        """Forget an id so a failed request can be retried with it."""
        with self._lock:
            self._seen.pop(request_id, None)
