"""
Kinds of data held in a flag data store.

A :class:`VersionedDataKind` is passed as the ``kind`` parameter of the data store methods. Its
``namespace`` names the collection ("features" or "segments"). Every item in a collection has a
``key``, a ``version`` and optionally ``deleted``; stores may hold items either as JSON-shaped
dicts or as decoded model objects.
"""

from typing import Any, Callable, Iterable, Optional

from flagclient.impl.model import FeatureFlag, ModelEntity, Segment

DependencyKeysFn = Callable[[Any], Iterable[str]]


class VersionedDataKind:
    __slots__ = ['__namespace', '__decoder', '__priority', '__dependency_keys']

    def __init__(self, namespace: str, decoder: Callable[[dict], ModelEntity], priority: int, get_dependency_keys: Optional[DependencyKeysFn] = None):
        self.__namespace = namespace
        self.__decoder = decoder
        self.__priority = priority
        self.__dependency_keys = get_dependency_keys

    @property
    def namespace(self) -> str:
        return self.__namespace

    @property
    def priority(self) -> int:
        """Kinds with a lower priority are written first when a store is initialized."""
        return self.__priority

    @property
    def get_dependency_keys(self) -> Optional[DependencyKeysFn]:
        """Keys of other items of the same kind that must be stored before a given item, if any."""
        return self.__dependency_keys

    def decode(self, item: Any) -> Any:
        """Turns a JSON-shaped dict into this kind's model class. None and already-decoded items
        pass through unchanged."""
        if item is None or isinstance(item, ModelEntity):
            return item
        return self.__decoder(item)

    def __repr__(self) -> str:
        return "VersionedDataKind(%s)" % self.__namespace


def _prerequisite_keys(flag: Any) -> Iterable[str]:
    return [prereq.get('key') for prereq in flag.get('prerequisites') or []]


FEATURES = VersionedDataKind("features", FeatureFlag, 1, _prerequisite_keys)

SEGMENTS = VersionedDataKind("segments", Segment, 0)
