from typing import Any, List, Optional

from flagclient.context import Context
from flagclient.impl.model.entity import opt_bool, opt_str, req_list, req_str

OP_IN = 'in'
OP_SEGMENT_MATCH = 'segmentMatch'

SUPPORTED_OPERATORS = (OP_IN, OP_SEGMENT_MATCH)


def _same_json_value(a: Any, b: Any) -> bool:
    # bool is a subclass of int; true must not match 1
    return isinstance(a, bool) == isinstance(b, bool) and a == b


class Clause:
    """
    A single condition in a flag or segment rule. Only exact-match (``in``) and segment
    membership (``segmentMatch``) operators are evaluated; any other operator never matches.
    """

    __slots__ = ['_context_kind', '_attribute', '_op', '_negate', '_values']

    def __init__(self, data: dict):
        self._op = req_str(data, 'op')
        self._values = req_list(data, 'values')
        self._attribute = opt_str(data, 'attribute') or 'key'
        self._context_kind = opt_str(data, 'contextKind')
        self._negate = opt_bool(data, 'negate')

    @property
    def attribute(self) -> str:
        return self._attribute

    @property
    def context_kind(self) -> Optional[str]:
        return self._context_kind

    @property
    def negate(self) -> bool:
        return self._negate

    @property
    def op(self) -> str:
        return self._op

    @property
    def values(self) -> List[Any]:
        return self._values

    @property
    def is_segment_match(self) -> bool:
        return self._op == OP_SEGMENT_MATCH

    def applies_to(self, context: Context) -> bool:
        return context.kind == (self._context_kind or Context.DEFAULT_KIND)

    def matches_attribute(self, context: Context) -> bool:
        """
        Evaluates an ``in`` clause against the context, including negation. A clause for another
        context kind, a missing attribute or an unsupported operator never matches, even when
        negated.
        """
        if self._op != OP_IN or not self.applies_to(context):
            return False
        actual = context.get(self._attribute)
        if actual is None:
            return False
        candidates = actual if isinstance(actual, list) else [actual]
        found = any(_same_json_value(c, v) for c in candidates for v in self._values)
        return self.apply_negation(found)

    def apply_negation(self, result: bool) -> bool:
        return not result if self._negate else result
