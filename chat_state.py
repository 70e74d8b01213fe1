import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

ANONYMOUS = 'Anonymous'


class StateError(RuntimeError):
    """Raised when a transition would break the queue/session invariants.

    The matchmaker never triggers this when transitions are followed in order,
    so it is treated as a programming error and left to propagate.
    """


def utcnow():
    return datetime.now(timezone.utc)


@dataclass
class Connection:
    connection_id: str
    connect_time: datetime = field(default_factory=utcnow)
    username: Optional[str] = None


class ConnectionRegistry:
    """Live connections by sid, plus an activity log of the ones that left."""

    def __init__(self, activity_limit=1000):
        self._connections: Dict[str, Connection] = {}
        # oldest records fall off once the limit is reached
        self._activity = deque(maxlen=activity_limit)

    def __contains__(self, connection_id):
        return connection_id in self._connections

    def __len__(self):
        return len(self._connections)

    def get(self, connection_id) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def register(self, connection_id) -> Connection:
        if connection_id in self._connections:
            raise StateError(f'connection {connection_id} is already registered')
        conn = Connection(connection_id)
        self._connections[connection_id] = conn
        return conn

    def set_display_name(self, connection_id, name) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            logger.debug(f'set_display_name for unknown connection {connection_id} ignored')
            return False
        conn.username = name
        return True

    def display_name(self, connection_id) -> str:
        conn = self._connections.get(connection_id)
        if conn is None or not conn.username:
            return ANONYMOUS
        return conn.username

    def unregister(self, connection_id) -> str:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            logger.debug(f'unregister for unknown connection {connection_id} ignored')
            return ANONYMOUS

        disconnect_time = utcnow()
        duration = (disconnect_time - conn.connect_time).total_seconds() / 60.0
        self._activity.append({
            'id': connection_id,
            'username': conn.username,
            'connectTime': conn.connect_time.isoformat(),
            'disconnectTime': disconnect_time.isoformat(),
            'duration': duration,
        })
        return conn.username or ANONYMOUS

    def activity(self) -> List[dict]:
        return list(self._activity)


class NameRegistry:
    """Display names in use, compared case-insensitively.

    The fallback name shown for unnamed connections is reserved and can
    never be claimed.
    """

    def __init__(self):
        self._names = set()

    @staticmethod
    def _key(name):
        return name.strip().lower()

    def is_available(self, name) -> bool:
        key = self._key(name)
        return key != self._key(ANONYMOUS) and key not in self._names

    def claim(self, name) -> bool:
        key = self._key(name)
        if not key or key == self._key(ANONYMOUS) or key in self._names:
            return False
        self._names.add(key)
        return True

    def release(self, name):
        if name:
            self._names.discard(self._key(name))


class WaitingQueue:
    """FIFO of connection ids waiting for a partner. Each id appears once."""

    def __init__(self):
        self._queue = deque()

    def __contains__(self, connection_id):
        return connection_id in self._queue

    def __len__(self):
        return len(self._queue)

    def __iter__(self):
        return iter(list(self._queue))

    def enqueue(self, connection_id):
        if connection_id not in self._queue:
            self._queue.append(connection_id)

    def dequeue_next(self) -> Optional[str]:
        if not self._queue:
            return None
        return self._queue.popleft()

    def remove(self, connection_id):
        try:
            self._queue.remove(connection_id)
        except ValueError:
            pass


class SessionTable:
    """Symmetric connection -> partner mapping for active pairings."""

    def __init__(self):
        self._partners: Dict[str, str] = {}

    def __contains__(self, connection_id):
        return connection_id in self._partners

    def __len__(self):
        # number of sessions, not directed entries
        return len(self._partners) // 2

    def pair(self, a, b):
        if a == b:
            raise StateError(f'cannot pair connection {a} with itself')
        for side in (a, b):
            if side in self._partners:
                raise StateError(f'connection {side} is already paired with {self._partners[side]}')
        self._partners[a] = b
        self._partners[b] = a

    def partner_of(self, connection_id) -> Optional[str]:
        return self._partners.get(connection_id)

    def unpair(self, connection_id) -> Optional[str]:
        partner = self._partners.pop(connection_id, None)
        if partner is None:
            return None
        self._partners.pop(partner, None)
        return partner

    def pairs(self):
        seen = set()
        for a, b in self._partners.items():
            if b not in seen:
                seen.add(a)
                yield a, b


class ChatState:
    """Everything the server keeps in memory, owned by one app instance."""

    def __init__(self, activity_limit=1000):
        self.connections = ConnectionRegistry(activity_limit)
        self.names = NameRegistry()
        self.waiting = WaitingQueue()
        self.sessions = SessionTable()
        # uploader id -> list of stored file paths
        self.user_files: Dict[str, List[str]] = {}
        self.lock = threading.RLock()

    @property
    def online_count(self):
        return len(self.connections)
