"""
This submodule contains the default in-memory data store.

The data store holds the last known state of all feature flags and segments, as received from the
data source.
"""

from collections import OrderedDict, defaultdict
from typing import Any, Mapping

from flagclient.impl.rwlock import ReadWriteLock
from flagclient.impl.util import log
from flagclient.interfaces import DataStore
from flagclient.versioned_data_kind import VersionedDataKind


class InMemoryDataStore(DataStore):
    """The default data store implementation, which holds all data in a thread-safe data structure
    in memory.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._initialized = False
        self._items = defaultdict(dict)  # type: defaultdict

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        with self._lock.read():
            item = self._items[kind].get(key)
        if item is None:
            log.debug("Attempted to get missing key %s in '%s', returning None", key, kind.namespace)
            return None
        if item.get('deleted', False):
            log.debug("Attempted to get deleted key %s in '%s', returning None", key, kind.namespace)
            return None
        return item

    def all(self, kind: VersionedDataKind) -> Mapping[str, Any]:
        with self._lock.read():
            items_of_kind = self._items[kind]
            return dict((k, i) for k, i in items_of_kind.items() if not i.get('deleted', False))

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        with self._lock.write():
            self._items.clear()
            for kind, items in all_data.items():
                self._items[kind] = dict(items)
                log.debug("Initialized '%s' store with %d items", kind.namespace, len(items))
            self._initialized = True

    # noinspection PyShadowingNames
    def delete(self, kind: VersionedDataKind, key: str, version: int):
        with self._lock.write():
            items_of_kind = self._items[kind]
            existing = items_of_kind.get(key)
            if existing is None or existing['version'] < version:
                items_of_kind[key] = {'key': key, 'deleted': True, 'version': version}

    def upsert(self, kind: VersionedDataKind, item: dict):
        key = item['key']
        with self._lock.write():
            items_of_kind = self._items[kind]
            existing = items_of_kind.get(key)
            if existing is None or existing['version'] < item['version']:
                items_of_kind[key] = item
                log.debug("Updated %s in '%s' to version %d", key, kind.namespace, item['version'])

    @property
    def initialized(self) -> bool:
        with self._lock.read():
            return self._initialized


class _DataSetSorter:
    """
    Orders a data set so that a store writing it item by item never holds a flag before the
    prerequisites and segments it depends on.
    """

    @staticmethod
    def sort_all_collections(all_data: Mapping[VersionedDataKind, Mapping[str, dict]]) -> 'OrderedDict':
        """Returns a copy of the input whose outer iteration order follows each kind's ``priority``,
        and whose inner order puts an item's dependencies (per ``get_dependency_keys``) before it.
        """
        outer_hash = OrderedDict()  # type: OrderedDict
        for kind in sorted(all_data.keys(), key=lambda k: k.priority):
            outer_hash[kind] = _DataSetSorter._sort_collection(kind, all_data[kind])
        return outer_hash

    @staticmethod
    def _sort_collection(kind: VersionedDataKind, items: Mapping[str, dict]):
        dependency_fn = kind.get_dependency_keys
        if dependency_fn is None or len(items) == 0:
            return items
        remaining_items = dict(items)
        items_out = OrderedDict()  # type: OrderedDict
        while len(remaining_items) > 0:
            first = next(iter(remaining_items.values()))
            _DataSetSorter._add_with_dependencies_first(first, dependency_fn, remaining_items, items_out)
        return items_out

    @staticmethod
    def _add_with_dependencies_first(item, dependency_fn, remaining_items, items_out):
        key = item.get('key')
        del remaining_items[key]
        for dep_key in dependency_fn(item):
            dep_item = remaining_items.get(dep_key)
            if dep_item is not None:
                _DataSetSorter._add_with_dependencies_first(dep_item, dependency_fn, remaining_items, items_out)
        items_out[key] = item


__all__ = ['InMemoryDataStore']
