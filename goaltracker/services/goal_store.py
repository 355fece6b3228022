from dataclasses import dataclass, field
from typing import Dict, Generic, Iterator, List, Optional, Set, TypeVar
import itertools
import logging

from goaltracker.schemas.goal_schema import Goal, Milestone, Notification, Reflection, Resource
from goaltracker.schemas.task_schema import Task, TaskCompletion
from goaltracker.utils.util_func import get_current_time

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Entry(Generic[T]):
    value: T
    stamp: int


class EntityTable(Generic[T]):
    """Entities of one kind indexed by id, each stamped with the version that
    last wrote it. Deleted ids keep a tombstone stamp so a refresh that
    started before the delete cannot bring them back."""

    def __init__(self):
        self._entries: Dict[str, Entry[T]] = {}
        self._tombstones: Dict[str, int] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        return entry.value if entry else None

    def stamp_of(self, key: str) -> Optional[int]:
        entry = self._entries.get(key)
        return entry.stamp if entry else None

    def values(self) -> List[T]:
        return [entry.value for entry in self._entries.values()]

    def items(self) -> Iterator:
        return ((key, entry.value) for key, entry in self._entries.items())

    def put(self, key: str, value: T, stamp: int) -> None:
        self._entries[key] = Entry(value, stamp)
        self._tombstones.pop(key, None)

    def remove(self, key: str, stamp: int) -> Optional[T]:
        entry = self._entries.pop(key, None)
        self._tombstones[key] = stamp
        return entry.value if entry else None

    def merge(
        self, snapshot: Dict[str, T], generation: int, stamp: int, prune_upto: Optional[int] = None
    ) -> None:
        """Apply a snapshot fetched at ``generation``. Tombstones stamped at or
        below ``prune_upto`` are no longer needed by any pending refresh."""
        for key, value in snapshot.items():
            if self._tombstones.get(key, 0) > generation:
                continue
            current = self._entries.get(key)
            if current is not None and current.stamp > generation:
                continue
            self._entries[key] = Entry(value, stamp)

        for key in list(self._entries):
            if key not in snapshot and self._entries[key].stamp <= generation:
                del self._entries[key]

        floor = generation if prune_upto is None else prune_upto
        self._tombstones = {k: s for k, s in self._tombstones.items() if s > floor}


@dataclass
class StoreSnapshot:
    goals: Dict[str, Goal] = field(default_factory=dict)
    tasks: Dict[str, Task] = field(default_factory=dict)
    milestones: Dict[str, Milestone] = field(default_factory=dict)
    reflections: Dict[str, Reflection] = field(default_factory=dict)
    resources: Dict[str, Resource] = field(default_factory=dict)
    completions: Dict[str, TaskCompletion] = field(default_factory=dict)


def completion_store_key(task_id: str, day) -> str:
    return f"{task_id}|{day.isoformat()}"


class GoalStore:
    """In-memory state of one user's goals, tasks and today's completions."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._clock = itertools.count(1)
        self.version = 0
        self.loaded = False
        self.goals: EntityTable[Goal] = EntityTable()
        self.tasks: EntityTable[Task] = EntityTable()
        self.milestones: EntityTable[Milestone] = EntityTable()
        self.reflections: EntityTable[Reflection] = EntityTable()
        self.resources: EntityTable[Resource] = EntityTable()
        self.completions: EntityTable[TaskCompletion] = EntityTable()
        self.notifications: List[Notification] = []
        # generations of refreshes whose fetch has not come back yet
        self._pending: Set[int] = set()

    def tick(self) -> int:
        self.version = next(self._clock)
        return self.version

    def begin_refresh(self) -> int:
        generation = self.tick()
        self._pending.add(generation)
        return generation

    def abandon_refresh(self, generation: int) -> None:
        self._pending.discard(generation)

    def apply_snapshot(self, generation: int, snapshot: StoreSnapshot) -> None:
        self._pending.discard(generation)
        stamp = self.tick()
        # a tombstone stays until every refresh that began before it has landed
        prune_upto = min(self._pending) if self._pending else stamp
        for table, rows in (
            (self.goals, snapshot.goals),
            (self.tasks, snapshot.tasks),
            (self.milestones, snapshot.milestones),
            (self.reflections, snapshot.reflections),
            (self.resources, snapshot.resources),
            (self.completions, snapshot.completions),
        ):
            table.merge(rows, generation, stamp, prune_upto)
        self.loaded = True

    def put_completion(self, completion: TaskCompletion) -> None:
        key = completion_store_key(completion.task_id, completion.completion_date)
        self.completions.put(key, completion, self.tick())

    def notify(self, level: str, message: str) -> None:
        self.notifications.append(
            Notification(level=level, message=message, created_at=get_current_time())
        )

    def drain_notifications(self) -> List[Notification]:
        drained, self.notifications = self.notifications, []
        return drained


class StoreRegistry:
    def __init__(self):
        self._stores: Dict[str, GoalStore] = {}

    def get(self, user_id: str) -> GoalStore:
        store = self._stores.get(user_id)
        if store is None:
            store = GoalStore(user_id)
            self._stores[user_id] = store
        return store

    def clear(self) -> None:
        self._stores.clear()


store_registry = StoreRegistry()
