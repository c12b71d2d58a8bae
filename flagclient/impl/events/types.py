"""
Analytics event inputs.

These objects are what the client hands to an :class:`flagclient.interfaces.EventProcessor`; the
processor decides what is eventually delivered (most evaluations only end up as summary counters).
One is created for every evaluation, so they are plain slotted objects.
"""

import json
from typing import Any, Callable, Optional

from flagclient.context import Context
from flagclient.evaluation import EvaluationDetail
from flagclient.impl import AnyNum
from flagclient.impl.model import FeatureFlag
from flagclient.impl.util import current_time_millis


class EventInput:
    __slots__ = ['timestamp', 'context']

    kind = ''

    def __init__(self, timestamp: int, context: Optional[Context]):
        self.timestamp = timestamp
        self.context = context

    def _properties(self) -> dict:
        return {'timestamp': self.timestamp, 'context': None if self.context is None else self.context.to_dict()}

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and self._properties() == other._properties()

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)

    def __repr__(self) -> str:
        return "%s(%s)" % (self.__class__.__name__, json.dumps(self._properties(), default=str))


class EventInputEvaluation(EventInput):
    """
    One flag evaluation. ``flag`` is None when the flag could not be found or the evaluation was
    rejected before a flag was looked up; ``variation`` is None when the default value was used.
    """

    __slots__ = ['key', 'flag', 'variation', 'value', 'reason', 'default_value', 'prereq_of', 'track_events']

    kind = 'feature'

    def __init__(
        self,
        timestamp: int,
        context: Optional[Context],
        key: str,
        flag: Optional[FeatureFlag],
        variation: Optional[int],
        value: Any,
        reason: Optional[dict],
        default_value: Any,
        prereq_of: Optional[FeatureFlag] = None,
        track_events: bool = False,
    ):
        super().__init__(timestamp, context)
        self.key = key
        self.flag = flag
        self.variation = variation
        self.value = value
        self.reason = reason
        self.default_value = default_value
        self.prereq_of = prereq_of
        self.track_events = track_events

    @property
    def version(self) -> Optional[int]:
        return None if self.flag is None else self.flag.version

    @property
    def error_kind(self) -> Optional[str]:
        """The ``errorKind`` of the reason, if reasons were recorded and the evaluation failed."""
        if self.reason is None or self.reason.get('kind') != 'ERROR':
            return None
        return self.reason.get('errorKind')

    def _properties(self) -> dict:
        props = super()._properties()
        props.update(
            key=self.key,
            version=self.version,
            variation=self.variation,
            value=self.value,
            reason=self.reason,
            default_value=self.default_value,
            prereq_of=None if self.prereq_of is None else self.prereq_of.key,
            track_events=self.track_events,
        )
        return props


class EventInputIdentify(EventInput):
    __slots__ = []  # type: list

    kind = 'identify'


class EventInputCustom(EventInput):
    __slots__ = ['key', 'data', 'metric_value']

    kind = 'custom'

    def __init__(self, timestamp: int, context: Context, key: str, data: Any = None, metric_value: Optional[AnyNum] = None):
        super().__init__(timestamp, context)
        self.key = key
        self.data = data
        self.metric_value = metric_value

    def _properties(self) -> dict:
        props = super()._properties()
        props.update(key=self.key, data=self.data, metric_value=self.metric_value)
        return props


class EventFactory:
    """
    Builds event inputs for the client. The client keeps one factory that records evaluation
    reasons (for the ``*_detail`` methods) and one that does not.
    """

    def __init__(self, with_reasons: bool, timestamp_fn: Callable[[], int] = current_time_millis):
        self._with_reasons = with_reasons
        self._timestamp_fn = timestamp_fn

    @property
    def with_reasons(self) -> bool:
        return self._with_reasons

    def _reason(self, reason: Optional[dict], always: bool = False) -> Optional[dict]:
        return reason if (self._with_reasons or always) else None

    def new_eval_event(self, flag: FeatureFlag, context: Context, detail: EvaluationDetail, default_value: Any, prereq_of_flag: Optional[FeatureFlag] = None) -> EventInputEvaluation:
        experiment = self.is_experiment(flag, detail.reason)
        return EventInputEvaluation(
            self._timestamp_fn(),
            context,
            flag.key,
            flag,
            detail.variation_index,
            detail.value,
            self._reason(detail.reason, experiment),
            default_value,
            prereq_of_flag,
            flag.track_events or experiment,
        )

    def new_default_event(self, flag: FeatureFlag, context: Optional[Context], default_value: Any, reason: Optional[dict]) -> EventInputEvaluation:
        return EventInputEvaluation(self._timestamp_fn(), context, flag.key, flag, None, default_value, self._reason(reason), default_value, None, flag.track_events)

    def new_unknown_flag_event(self, key: str, context: Optional[Context], default_value: Any, reason: Optional[dict]) -> EventInputEvaluation:
        return EventInputEvaluation(self._timestamp_fn(), context, key, None, None, default_value, self._reason(reason), default_value, None, False)

    def new_identify_event(self, context: Context) -> EventInputIdentify:
        return EventInputIdentify(self._timestamp_fn(), context)

    def new_custom_event(self, event_name: str, context: Context, data: Any, metric_value: Optional[AnyNum]) -> EventInputCustom:
        return EventInputCustom(self._timestamp_fn(), context, event_name, data, metric_value)

    @staticmethod
    def is_experiment(flag: FeatureFlag, reason: Optional[dict]) -> bool:
        """A rule or fallthrough marked for tracking forces a full event that includes the reason."""
        if reason is None:
            return False
        kind = reason.get('kind')
        if kind == 'FALLTHROUGH':
            return flag.track_events_fallthrough
        if kind == 'RULE_MATCH':
            index = reason.get('ruleIndex', -1)
            return 0 <= index < len(flag.rules) and flag.rules[index].track_events
        return False
