from typing import List, Optional, Set

from flagclient.context import Context
from flagclient.impl.model.clause import Clause
from flagclient.impl.model.entity import (ModelEntity, opt_bool,
                                          opt_dict_list, opt_str_list,
                                          req_int, req_str)


class SegmentRule:
    __slots__ = ['_clauses']

    def __init__(self, data: dict):
        self._clauses = [Clause(c) for c in opt_dict_list(data, 'clauses')]

    @property
    def clauses(self) -> List[Clause]:
        return self._clauses


class Segment(ModelEntity):
    """
    A reusable set of contexts: explicit user keys that are included or excluded, plus rules.
    """

    __slots__ = ['_data', '_key', '_version', '_deleted', '_included', '_excluded', '_rules']

    def __init__(self, data: dict):
        super().__init__(data)
        self._key = req_str(data, 'key')
        self._version = req_int(data, 'version')
        self._deleted = opt_bool(data, 'deleted')
        self._included = set()  # type: Set[str]
        self._excluded = set()  # type: Set[str]
        self._rules = []  # type: List[SegmentRule]
        if self._deleted:
            return
        self._included = set(opt_str_list(data, 'included'))
        self._excluded = set(opt_str_list(data, 'excluded'))
        self._rules = [SegmentRule(r) for r in opt_dict_list(data, 'rules')]

    @property
    def key(self) -> str:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def included(self) -> Set[str]:
        return self._included

    @property
    def excluded(self) -> Set[str]:
        return self._excluded

    @property
    def rules(self) -> List[SegmentRule]:
        return self._rules

    def explicit_membership(self, context: Context) -> Optional[bool]:
        """
        True or False if the context's key is listed in ``included`` or ``excluded``; None if the
        rules decide. Key lists only apply to the default context kind.
        """
        if context.kind != Context.DEFAULT_KIND:
            return None
        if context.key in self._included:
            return True
        if context.key in self._excluded:
            return False
        return None
