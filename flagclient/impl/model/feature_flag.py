from typing import Any, List, Optional, Set, Union

from flagclient.context import Context
from flagclient.impl.model.clause import Clause
from flagclient.impl.model.entity import (ModelEntity, opt_bool, opt_dict,
                                          opt_dict_list, opt_int, opt_list,
                                          opt_number, opt_str, opt_str_list,
                                          req_int, req_str)


class VariationOrRollout:
    """
    Either a fixed variation index or a percentage rollout. Rollouts are carried so that flags
    using them can be recognized, but they are not evaluated.
    """

    __slots__ = ['variation', 'rollout']

    def __init__(self, data: Optional[dict]):
        data = data or {}
        self.variation = opt_int(data, 'variation')  # type: Optional[int]
        self.rollout = opt_dict(data, 'rollout')  # type: Optional[dict]

    @property
    def is_rollout(self) -> bool:
        return self.variation is None and self.rollout is not None


class Prerequisite:
    __slots__ = ['key', 'variation']

    def __init__(self, data: dict):
        self.key = req_str(data, 'key')  # type: str
        self.variation = req_int(data, 'variation')  # type: int

    def is_satisfied_by(self, prereq_flag: 'FeatureFlag', variation_index: Optional[int]) -> bool:
        # an off prerequisite fails even if its off variation is the required one
        return prereq_flag.on and variation_index == self.variation


class Target:
    """Individual context keys that always receive one variation."""

    __slots__ = ['context_kind', 'variation', 'values']

    def __init__(self, data: dict):
        self.context_kind = opt_str(data, 'contextKind')  # type: Optional[str]
        self.variation = req_int(data, 'variation')  # type: int
        self.values = set(opt_str_list(data, 'values'))  # type: Set[str]

    def matches(self, context: Context) -> bool:
        return context.kind == (self.context_kind or Context.DEFAULT_KIND) and context.key in self.values


class FlagRule:
    __slots__ = ['id', 'clauses', 'track_events', 'variation_or_rollout']

    def __init__(self, data: dict):
        self.id = opt_str(data, 'id')  # type: Optional[str]
        self.clauses = [Clause(c) for c in opt_dict_list(data, 'clauses')]  # type: List[Clause]
        self.track_events = opt_bool(data, 'trackEvents')
        self.variation_or_rollout = VariationOrRollout(data)

    def reason(self, index: int) -> dict:
        return {'kind': 'RULE_MATCH', 'ruleIndex': index, 'ruleId': self.id}


class FeatureFlag(ModelEntity):
    """
    A decoded feature flag. Properties other than ``key`` and ``version`` may be absent, and a
    deleted flag (a tombstone) carries nothing else.
    """

    def __init__(self, data: dict):
        super().__init__(data)
        self.__key = req_str(data, 'key')
        self.__version = req_int(data, 'version')
        self.__deleted = opt_bool(data, 'deleted')
        live = {} if self.__deleted else data

        self.__on = opt_bool(live, 'on')
        self.__variations = opt_list(live, 'variations')
        self.__off_variation = opt_int(live, 'offVariation')
        self.__fallthrough = VariationOrRollout(opt_dict(live, 'fallthrough'))
        self.__prerequisites = [Prerequisite(p) for p in opt_dict_list(live, 'prerequisites')]
        self.__targets = [Target(t) for t in opt_dict_list(live, 'targets')]
        self.__rules = [FlagRule(r) for r in opt_dict_list(live, 'rules')]

        availability = opt_dict(live, 'clientSideAvailability') or {}
        self.__client_side = opt_bool(live, 'clientSide') or opt_bool(availability, 'usingEnvironmentId')
        self.__track_events = opt_bool(live, 'trackEvents')
        self.__track_events_fallthrough = opt_bool(live, 'trackEventsFallthrough')
        self.__debug_events_until_date = opt_number(live, 'debugEventsUntilDate')

    @property
    def key(self) -> str:
        return self.__key

    @property
    def version(self) -> int:
        return self.__version

    @property
    def deleted(self) -> bool:
        return self.__deleted

    @property
    def on(self) -> bool:
        return self.__on

    @property
    def variations(self) -> List[Any]:
        return self.__variations

    @property
    def off_variation(self) -> Optional[int]:
        return self.__off_variation

    @property
    def fallthrough(self) -> VariationOrRollout:
        return self.__fallthrough

    @property
    def prerequisites(self) -> List[Prerequisite]:
        return self.__prerequisites

    @property
    def targets(self) -> List[Target]:
        return self.__targets

    @property
    def rules(self) -> List[FlagRule]:
        return self.__rules

    @property
    def client_side(self) -> bool:
        return self.__client_side

    @property
    def track_events(self) -> bool:
        return self.__track_events

    @property
    def track_events_fallthrough(self) -> bool:
        return self.__track_events_fallthrough

    @property
    def debug_events_until_date(self) -> Optional[Union[int, float]]:
        return self.__debug_events_until_date

    def has_variation(self, index: int) -> bool:
        return 0 <= index < len(self.__variations)

    def matched_target(self, context: Context) -> Optional[Target]:
        return next((t for t in self.__targets if t.matches(context)), None)
