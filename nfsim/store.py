# File location: nfsim/store.py
# In-Memory Topology Store
# Keyed collections per entity kind with change notification

from typing import Callable, Dict, Generic, List, Optional, Set, TypeVar, Any
from enum import Enum
from threading import Lock
import logging

from pydantic import BaseModel

from .errors import ConflictError, NotFoundError
from .models import NetworkFunction, Connection, Bus, BusConnection, NFType

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ChangeType(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


class EntityCollection(Generic[T]):
    """
    Keyed collection of one entity kind.

    Reads return deep copies and writes replace the whole entity, so a
    caller never holds a reference into the store.
    """

    def __init__(self, kind: str, notify: Callable[[str, ChangeType, BaseModel], None]):
        self.kind = kind
        self._items: Dict[str, T] = {}
        self._lock = Lock()
        self._notify = notify

    def add(self, entity: T) -> T:
        with self._lock:
            if entity.id in self._items:
                raise ConflictError(f"{self.kind} {entity.id} already exists")
            self._items[entity.id] = entity.model_copy(deep=True)
        self._notify(self.kind, ChangeType.ADDED, entity)
        return entity.model_copy(deep=True)

    def update(self, entity: T) -> T:
        with self._lock:
            if entity.id not in self._items:
                raise NotFoundError(f"{self.kind} {entity.id} not found")
            self._items[entity.id] = entity.model_copy(deep=True)
        self._notify(self.kind, ChangeType.UPDATED, entity)
        return entity.model_copy(deep=True)

    def remove(self, entity_id: str) -> Optional[T]:
        with self._lock:
            removed = self._items.pop(entity_id, None)
        if removed is not None:
            self._notify(self.kind, ChangeType.REMOVED, removed)
        return removed

    def get(self, entity_id: str) -> Optional[T]:
        item = self._items.get(entity_id)
        return item.model_copy(deep=True) if item is not None else None

    def get_all(self) -> List[T]:
        with self._lock:
            items = list(self._items.values())
        return [item.model_copy(deep=True) for item in items]

    def contains(self, entity_id: str) -> bool:
        return entity_id in self._items

    def clear(self) -> int:
        with self._lock:
            removed = list(self._items.values())
            self._items.clear()
        for item in removed:
            self._notify(self.kind, ChangeType.REMOVED, item)
        return len(removed)

    def __len__(self) -> int:
        return len(self._items)


class TopologyStore:
    """Holds NFs, connections, buses and bus connections"""

    def __init__(self):
        self._subscribers: List[Callable[[str, ChangeType, BaseModel], Any]] = []
        self.nfs: EntityCollection[NetworkFunction] = EntityCollection("nf", self._notify)
        self.connections: EntityCollection[Connection] = EntityCollection("connection", self._notify)
        self.buses: EntityCollection[Bus] = EntityCollection("bus", self._notify)
        self.bus_connections: EntityCollection[BusConnection] = EntityCollection("bus_connection", self._notify)

    # =========================================================================
    # Change Notification
    # =========================================================================

    def subscribe(self, callback: Callable[[str, ChangeType, BaseModel], Any]):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str, ChangeType, BaseModel], Any]):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self, kind: str, change: ChangeType, entity: BaseModel):
        for callback in list(self._subscribers):
            try:
                callback(kind, change, entity)
            except Exception as e:
                logger.error(f"Store subscriber error on {kind} {change.value}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def is_empty(self) -> bool:
        return len(self.nfs) == 0

    def find_nf_by_type(self, nf_type: NFType) -> Optional[NetworkFunction]:
        for nf in self.nfs.get_all():
            if nf.type == nf_type:
                return nf
        return None

    def find_nfs_by_type(self, nf_type: NFType) -> List[NetworkFunction]:
        return [nf for nf in self.nfs.get_all() if nf.type == nf_type]

    def find_nf_by_ip(self, ip: str) -> Optional[NetworkFunction]:
        for nf in self.nfs.get_all():
            if nf.config.ipAddress == ip:
                return nf
        return None

    def used_ips(self, exclude_nf_id: Optional[str] = None) -> Set[str]:
        return {nf.config.ipAddress for nf in self.nfs.get_all() if nf.id != exclude_nf_id}

    def used_ports(self, exclude_nf_id: Optional[str] = None) -> Set[int]:
        return {nf.config.port for nf in self.nfs.get_all() if nf.id != exclude_nf_id}

    def connections_for(self, nf_id: str) -> List[Connection]:
        return [c for c in self.connections.get_all() if c.sourceId == nf_id or c.targetId == nf_id]

    def bus_connections_for(self, nf_id: str) -> List[BusConnection]:
        return [bc for bc in self.bus_connections.get_all() if bc.nfId == nf_id]

    def find_bus_connection(self, nf_id: str, bus_id: str) -> Optional[BusConnection]:
        for bc in self.bus_connections.get_all():
            if bc.nfId == nf_id and bc.busId == bus_id:
                return bc
        return None

    def clear(self):
        self.bus_connections.clear()
        self.connections.clear()
        self.buses.clear()
        self.nfs.clear()
