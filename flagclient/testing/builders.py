from __future__ import annotations

import copy
from typing import Any, Optional

from flagclient.context import Context
from flagclient.impl.model import *

# Fluent builders for flag and segment data. Each builder produces the JSON-shaped dict the flag
# service would send; FlagBuilder and SegmentBuilder can also decode it into the model class.


class _DataBuilder:
    def __init__(self, **props):
        self._props = props

    def _with(self, name: str, value: Any):
        self._props[name] = value
        return self

    def _add(self, name: str, *items: Any):
        self._props.setdefault(name, []).extend(items)
        return self

    def build_dict(self) -> dict:
        return copy.deepcopy(self._props)

    def build(self):
        return self.build_dict()


class FlagBuilder(_DataBuilder):
    def __init__(self, key: str):
        super().__init__(key=key, version=1, on=False, variations=[], fallthrough={}, prerequisites=[], targets=[], rules=[])

    def build(self) -> FeatureFlag:
        return FeatureFlag(self.build_dict())

    def version(self, version: int) -> FlagBuilder:
        return self._with('version', version)

    def on(self, on: bool) -> FlagBuilder:
        return self._with('on', on)

    def variations(self, *values: Any) -> FlagBuilder:
        return self._with('variations', list(values))

    def off_variation(self, index: Optional[int]) -> FlagBuilder:
        return self._with('offVariation', index)

    def fallthrough_variation(self, index: int) -> FlagBuilder:
        return self._with('fallthrough', {'variation': index})

    def fallthrough_rollout(self, rollout: dict) -> FlagBuilder:
        return self._with('fallthrough', {'rollout': rollout})

    def prerequisite(self, key: str, variation: int) -> FlagBuilder:
        return self._add('prerequisites', {'key': key, 'variation': variation})

    def target(self, variation: int, *keys: str) -> FlagBuilder:
        return self._add('targets', {'variation': variation, 'values': list(keys)})

    def context_target(self, context_kind: str, variation: int, *keys: str) -> FlagBuilder:
        return self._add('targets', {'contextKind': context_kind, 'variation': variation, 'values': list(keys)})

    def rules(self, *rules: dict) -> FlagBuilder:
        return self._add('rules', *rules)

    def track_events(self, value: bool) -> FlagBuilder:
        return self._with('trackEvents', value)

    def track_events_fallthrough(self, value: bool) -> FlagBuilder:
        return self._with('trackEventsFallthrough', value)

    def debug_events_until_date(self, millis: Optional[int]) -> FlagBuilder:
        return self._with('debugEventsUntilDate', millis)


class FlagRuleBuilder(_DataBuilder):
    def __init__(self):
        super().__init__(clauses=[])

    def id(self, rule_id: str) -> FlagRuleBuilder:
        return self._with('id', rule_id)

    def clauses(self, *clauses: dict) -> FlagRuleBuilder:
        return self._add('clauses', *clauses)

    def variation(self, index: int) -> FlagRuleBuilder:
        return self._with('variation', index)

    def track_events(self, value: bool) -> FlagRuleBuilder:
        return self._with('trackEvents', value)


class SegmentBuilder(_DataBuilder):
    def __init__(self, key: str):
        super().__init__(key=key, version=1, included=[], excluded=[], rules=[])

    def build(self) -> Segment:
        return Segment(self.build_dict())

    def version(self, version: int) -> SegmentBuilder:
        return self._with('version', version)

    def included(self, *keys: str) -> SegmentBuilder:
        return self._add('included', *keys)

    def excluded(self, *keys: str) -> SegmentBuilder:
        return self._add('excluded', *keys)

    def rules(self, *rules: dict) -> SegmentBuilder:
        return self._add('rules', *rules)


class SegmentRuleBuilder(_DataBuilder):
    def __init__(self):
        super().__init__(clauses=[])

    def clauses(self, *clauses: dict) -> SegmentRuleBuilder:
        return self._add('clauses', *clauses)


def build_off_flag_with_value(key: str, value: Any) -> FlagBuilder:
    return FlagBuilder(key).version(100).on(False).variations(value).off_variation(0)


def make_boolean_flag_with_rules(*rules: dict) -> FeatureFlag:
    return FlagBuilder('flagkey').on(True).variations(True, False).fallthrough_variation(1).rules(*rules).build()


def make_boolean_flag_with_clauses(*clauses: dict) -> FeatureFlag:
    return make_boolean_flag_with_rules(FlagRuleBuilder().clauses(*clauses).variation(0).build())


def make_boolean_flag_matching_segment(segment: Segment) -> FeatureFlag:
    return make_boolean_flag_with_clauses(make_clause_matching_segment_key(segment.key))


def make_clause(context_kind: Optional[str], attr: str, op: str, *values: Any) -> dict:
    clause = {'attribute': attr, 'op': op, 'values': list(values)}
    if context_kind is not None:
        clause['contextKind'] = context_kind
    return clause


def make_clause_matching_context(context: Context) -> dict:
    return make_clause(context.kind, 'key', 'in', context.key)


def make_clause_matching_segment_key(*segment_keys: str) -> dict:
    return make_clause(None, '', 'segmentMatch', *segment_keys)


def make_segment_rule_matching_context(context: Context) -> dict:
    return SegmentRuleBuilder().clauses(make_clause_matching_context(context)).build()


def negate_clause(clause: dict) -> dict:
    return dict(clause, negate=not clause.get('negate', False))
