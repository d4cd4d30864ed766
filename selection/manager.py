"""
Favorites and compare-set: deduplicated, ordered, persisted selection sets.

Each set lives in memory and mirrors itself into a DurableStore under a
fixed key after every change. Entries are snapshots of the entity at the
time it was added, so the sets still render when the directory is offline.

Persisted format (one JSON list per key, oldest first):

    [{"id": "c-1", "kind": "course", "name": "Data Science",
      "data": {...}, "addedAt": "2026-01-05T10:00:00.000Z"}, ...]

addedAt is only present on favorites.
"""

import copy
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from directory.config import COMPARE_CAPACITY, COMPARE_KEY, FAVORITES_KEY
from directory.models import Entity, check_kind, display_name
from selection.store import DurableStore, StoreError

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SelectionItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    # Older payloads call this field "type".
    kind: Literal["institution", "course"] = Field(validation_alias=AliasChoices("kind", "type"))
    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    added_at: str | None = Field(
        default=None,
        validation_alias=AliasChoices("addedAt", "added_at"),
        serialization_alias="addedAt",
    )

    def to_record(self) -> dict[str, Any]:
        record = self.model_dump(mode="json", by_alias=True)
        if record.get("addedAt") is None:
            record.pop("addedAt", None)
        return record


_ITEMS = TypeAdapter(list[SelectionItem])


def snapshot_item(kind: str, entity: Entity) -> SelectionItem:
    """Copy an entity view into a new SelectionItem."""
    check_kind(kind)
    return SelectionItem(
        id=str(entity["id"]),
        kind=kind,
        name=display_name(kind, entity),
        data=copy.deepcopy(entity),
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SelectionSet:
    """
    One named selection set.

    capacity=None means unbounded; otherwise adding beyond capacity evicts
    the oldest entry. stamp=True records addedAt on insertion.
    """

    def __init__(
        self,
        name: str,
        store: DurableStore,
        key: str,
        capacity: int | None = None,
        stamp: bool = False,
        clock: Clock | None = None,
    ):
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be positive")
        self.name     = name
        self.store    = store
        self.key      = key
        self.capacity = capacity
        self.stamp    = stamp
        self.clock    = clock or _utc_now
        self._lock    = threading.Lock()
        self._items   = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[SelectionItem]:
        try:
            raw = self.store.get(self.key)
        except StoreError as exc:
            log.warning("Could not read %s from store, starting empty: %s", self.name, exc)
            return []
        if raw is None:
            return []
        try:
            items = _ITEMS.validate_json(raw)
        except ValidationError as exc:
            log.warning(
                "Discarding corrupt %s payload (%d errors)", self.name, exc.error_count()
            )
            return []

        seen: set[str] = set()
        unique = []
        for item in items:
            if item.id not in seen:
                seen.add(item.id)
                unique.append(item)
        if self.capacity is not None and len(unique) > self.capacity:
            unique = unique[-self.capacity:]
        log.debug("Loaded %d %s", len(unique), self.name)
        return unique

    def _persist(self, items: list[SelectionItem]) -> None:
        payload = json.dumps([item.to_record() for item in items], ensure_ascii=False)
        self.store.set(self.key, payload)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, item: SelectionItem) -> bool:
        """Append item unless its id is already present. Returns True if added."""
        with self._lock:
            if any(existing.id == item.id for existing in self._items):
                return False
            added_at = _timestamp(self.clock()) if self.stamp else None
            entry = item.model_copy(update={"added_at": added_at}, deep=True)

            items = [*self._items, entry]
            if self.capacity is not None and len(items) > self.capacity:
                evicted = items.pop(0)
                log.info("%s full, evicted %s", self.name, evicted.id)

            self._persist(items)
            self._items = items
            return True

    def remove(self, item_id: str) -> bool:
        with self._lock:
            items = [i for i in self._items if i.id != item_id]
            if len(items) == len(self._items):
                return False
            self._persist(items)
            self._items = items
            return True

    def clear(self) -> None:
        with self._lock:
            self.store.delete(self.key)
            self._items = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def contains(self, item_id: str) -> bool:
        return any(i.id == item_id for i in self._items)

    def count(self) -> int:
        return len(self._items)

    def items(self) -> list[SelectionItem]:
        return [i.model_copy(deep=True) for i in self._items]

    def items_by_kind(self, kind: str) -> list[SelectionItem]:
        return [i.model_copy(deep=True) for i in self._items if i.kind == kind]

    list_by_kind = items_by_kind

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, str) and self.contains(item_id)

    def __len__(self) -> int:
        return self.count()


class SelectionManager:
    """The two selection sets that share one store."""

    def __init__(self, store: DurableStore, clock: Clock | None = None):
        self.favorites = SelectionSet("favorites", store, FAVORITES_KEY, stamp=True, clock=clock)
        self.compare   = SelectionSet("compare", store, COMPARE_KEY, capacity=COMPARE_CAPACITY)
        self._sets     = {"favorites": self.favorites, "compare": self.compare}

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._sets)

    def __getitem__(self, name: str) -> SelectionSet:
        try:
            return self._sets[name]
        except KeyError:
            raise KeyError(f"Unknown selection set: {name!r}") from None
