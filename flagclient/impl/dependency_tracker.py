from typing import Dict, Iterable, NamedTuple, Set

from flagclient.impl.model.clause import Clause
from flagclient.impl.model.feature_flag import FeatureFlag
from flagclient.impl.model.segment import Segment
from flagclient.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind


class KindAndKey(NamedTuple):
    kind: VersionedDataKind
    key: str


class DependencyTracker:
    """
    Keeps a two-way graph of which flags depend on which other flags (prerequisites) and segments
    (``segmentMatch`` clauses). When an item changes, the graph tells us every flag whose result
    could have changed with it.
    """

    def __init__(self):
        self.__depends_on: Dict[KindAndKey, Set[KindAndKey]] = {}
        self.__depended_on_by: Dict[KindAndKey, Set[KindAndKey]] = {}

    def update_dependencies_from(self, kind: VersionedDataKind, key: str, item):
        """
        Replaces the outgoing edges of one item. Passing ``None`` for a deleted item removes them.
        """
        node = KindAndKey(kind=kind, key=key)
        new_deps = DependencyTracker.compute_dependencies_from(kind, item)

        for old_dep in self.__depends_on.get(node, set()):
            self.__depended_on_by.get(old_dep, set()).discard(node)

        self.__depends_on[node] = new_deps
        for dep in new_deps:
            self.__depended_on_by.setdefault(dep, set()).add(node)

    def add_affected_items(self, items_out: Set[KindAndKey], modified: KindAndKey):
        """
        Adds ``modified`` and everything that directly or transitively depends on it to ``items_out``.
        """
        if modified in items_out:
            return
        items_out.add(modified)
        for parent in list(self.__depended_on_by.get(modified, ())):
            self.add_affected_items(items_out, parent)

    def reset(self):
        self.__depends_on.clear()
        self.__depended_on_by.clear()

    @staticmethod
    def compute_dependencies_from(kind: VersionedDataKind, item) -> Set[KindAndKey]:
        if item is None or item.get('deleted', False):
            return set()

        decoded = kind.decode(item)
        if kind == FEATURES and isinstance(decoded, FeatureFlag):
            deps = set(KindAndKey(kind=FEATURES, key=p.key) for p in decoded.prerequisites)
            for rule in decoded.rules:
                deps.update(DependencyTracker.segment_keys_from_clauses(rule.clauses))
            return deps
        if kind == SEGMENTS and isinstance(decoded, Segment):
            deps = set()
            for rule in decoded.rules:
                deps.update(DependencyTracker.segment_keys_from_clauses(rule.clauses))
            return deps
        return set()

    @staticmethod
    def segment_keys_from_clauses(clauses: Iterable[Clause]) -> Set[KindAndKey]:
        return set(KindAndKey(kind=SEGMENTS, key=value) for clause in clauses if clause.is_segment_match for value in clause.values)


def affected_flag_keys(tracker: DependencyTracker, kind: VersionedDataKind, key: str) -> Set[str]:
    items: Set[KindAndKey] = set()
    tracker.add_affected_items(items, KindAndKey(kind=kind, key=key))
    return set(i.key for i in items if i.kind == FEATURES)
