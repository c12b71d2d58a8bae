from typing import Callable, List, Optional

from flagclient import interfaces
from flagclient.context import Context
from flagclient.evaluation import ErrorKind, EvaluationDetail, error_reason
from flagclient.impl.events.types import EventFactory, EventInputEvaluation
from flagclient.impl.model import (Clause, FeatureFlag, Segment,
                                   VariationOrRollout)
from flagclient.impl.util import log

# The Evaluator only reads flags and segments through the two lookup functions it is given, so it
# has no knowledge of the data store and no side effects. Prerequisite evaluation events are
# collected in the result and sent by the caller.


class EvalResult:
    __slots__ = ['detail', 'events', 'prerequisites']

    def __init__(self, detail: EvaluationDetail, events: Optional[List[EventInputEvaluation]] = None, prerequisites: Optional[List[str]] = None):
        self.detail = detail
        self.events = events
        self.prerequisites = prerequisites

    def __repr__(self) -> str:  # used only in test debugging
        return "EvalResult(detail=%s, events=%s)" % (self.detail, self.events)


class EvaluationException(Exception):
    def __init__(self, message: str, error_kind: ErrorKind = ErrorKind.MALFORMED_FLAG):
        super().__init__(message)
        self.error_kind = error_kind


class _EvalState:
    """Per-evaluation bookkeeping: cycle detection stacks and prerequisite output."""

    __slots__ = ['event_factory', 'prereq_stack', 'segment_stack', 'events', 'top_level_prereqs']

    def __init__(self, event_factory: EventFactory):
        self.event_factory = event_factory
        self.prereq_stack = []  # type: List[str]
        self.segment_stack = []  # type: List[str]
        self.events = None  # type: Optional[List[EventInputEvaluation]]
        self.top_level_prereqs = None  # type: Optional[List[str]]

    def record_prereq_event(self, event: EventInputEvaluation):
        if self.events is None:
            self.events = []
        self.events.append(event)

    def record_top_level_prereq(self, key: str):
        if self.top_level_prereqs is None:
            self.top_level_prereqs = []
        self.top_level_prereqs.append(key)


def _circular_reference(what: str, key: str) -> EvaluationException:
    return EvaluationException("%s \"%s\" caused a circular reference; this is probably a temporary condition due to an incomplete update" % (what, key))


class Evaluator(interfaces.Evaluator):
    """
    Computes a flag's value for a context from the flag's off variation, prerequisites, individual
    targets, rules and fallthrough.

    Rule clauses support exact matching (``in``) and segment membership (``segmentMatch``); any
    other operator does not match. Percentage rollouts are not evaluated and produce a
    ``MALFORMED_FLAG`` error.
    """

    def __init__(self, get_flag: Callable[[str], Optional[FeatureFlag]], get_segment: Callable[[str], Optional[Segment]]):
        """
        :param get_flag: function provided by the client that takes a flag key and returns either the flag or None
        :param get_segment: same as get_flag but for segments
        """
        self.__get_flag = get_flag
        self.__get_segment = get_segment

    def evaluate(self, flag: FeatureFlag, context: Context, event_factory: EventFactory) -> EvalResult:
        state = _EvalState(event_factory)
        try:
            detail = self._evaluate(flag, context, state)
        except EvaluationException as e:
            log.error("Could not evaluate flag \"%s\": %s", flag.key, e)
            return EvalResult(EvaluationDetail(None, None, error_reason(e.error_kind)))
        return EvalResult(detail, state.events, state.top_level_prereqs)

    def _evaluate(self, flag: FeatureFlag, context: Context, state: _EvalState) -> EvaluationDetail:
        if not flag.on:
            return _off_value(flag, {'kind': 'OFF'})

        failed_prereq = self._first_failed_prerequisite(flag, context, state)
        if failed_prereq is not None:
            return _off_value(flag, {'kind': 'PREREQUISITE_FAILED', 'prerequisiteKey': failed_prereq})

        target = flag.matched_target(context)
        if target is not None:
            return _variation(flag, target.variation, {'kind': 'TARGET_MATCH'})

        for index, rule in enumerate(flag.rules):
            if self._all_clauses_match(rule.clauses, context, state):
                return _variation_or_rollout(flag, rule.variation_or_rollout, rule.reason(index))

        return _variation_or_rollout(flag, flag.fallthrough, {'kind': 'FALLTHROUGH'})

    def _first_failed_prerequisite(self, flag: FeatureFlag, context: Context, state: _EvalState) -> Optional[str]:
        if not flag.prerequisites:
            return None

        top_level = not state.prereq_stack
        state.prereq_stack.append(flag.key)
        try:
            for prereq in flag.prerequisites:
                if prereq.key in state.prereq_stack:
                    raise _circular_reference("prerequisite relationship to", prereq.key)
                if top_level:
                    state.record_top_level_prereq(prereq.key)

                prereq_flag = self.__get_flag(prereq.key)
                if prereq_flag is None:
                    log.warning("Missing prereq flag: %s", prereq.key)
                    return prereq.key

                prereq_detail = self._evaluate(prereq_flag, context, state)
                state.record_prereq_event(state.event_factory.new_eval_event(prereq_flag, context, prereq_detail, None, flag))
                if not prereq.is_satisfied_by(prereq_flag, prereq_detail.variation_index):
                    return prereq.key
            return None
        finally:
            state.prereq_stack.pop()

    def _all_clauses_match(self, clauses: List[Clause], context: Context, state: _EvalState) -> bool:
        return all(self._clause_matches(clause, context, state) for clause in clauses)

    def _clause_matches(self, clause: Clause, context: Context, state: _EvalState) -> bool:
        if not clause.is_segment_match:
            return clause.matches_attribute(context)
        in_any = any(self._in_segment(segment, context, state) for segment in self._segments(clause.values))
        return clause.apply_negation(in_any)

    def _segments(self, keys: List[str]):
        for key in keys:
            segment = self.__get_segment(key)
            if segment is not None:
                yield segment

    def _in_segment(self, segment: Segment, context: Context, state: _EvalState) -> bool:
        explicit = segment.explicit_membership(context)
        if explicit is not None:
            return explicit
        if segment.key in state.segment_stack:
            raise _circular_reference("segment rule referencing segment", segment.key)
        state.segment_stack.append(segment.key)
        try:
            return any(self._all_clauses_match(rule.clauses, context, state) for rule in segment.rules)
        finally:
            state.segment_stack.pop()


class NullEvaluator(interfaces.Evaluator):
    """
    Evaluator that never produces a variation; every flag acts as if it were off with no off
    variation, so the caller's default is returned.
    """

    def evaluate(self, flag: FeatureFlag, context: Context, event_factory: EventFactory) -> EvalResult:
        return EvalResult(EvaluationDetail(None, None, {'kind': 'OFF'}))


def _variation(flag: FeatureFlag, index: int, reason: dict) -> EvaluationDetail:
    if not flag.has_variation(index):
        return EvaluationDetail(None, None, error_reason(ErrorKind.MALFORMED_FLAG))
    return EvaluationDetail(flag.variations[index], index, reason)


def _off_value(flag: FeatureFlag, reason: dict) -> EvaluationDetail:
    if flag.off_variation is None:
        return EvaluationDetail(None, None, reason)
    return _variation(flag, flag.off_variation, reason)


def _variation_or_rollout(flag: FeatureFlag, vr: VariationOrRollout, reason: dict) -> EvaluationDetail:
    if vr.variation is not None:
        return _variation(flag, vr.variation, reason)
    if vr.is_rollout:
        log.warning("Flag \"%s\" uses a percentage rollout, which this client does not evaluate", flag.key)
    return EvaluationDetail(None, None, error_reason(ErrorKind.MALFORMED_FLAG))
