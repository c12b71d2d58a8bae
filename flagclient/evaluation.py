"""
Public types describing the outcome of flag evaluations.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """
    The reasons an evaluation can fail and fall back to the application's default value. Each one
    appears as the ``errorKind`` of an ``ERROR`` evaluation reason.
    """

    CLIENT_NOT_READY = 'CLIENT_NOT_READY'
    """
    The client was not yet initialized (or has been closed) and the data store has no usable data.
    """

    FLAG_NOT_FOUND = 'FLAG_NOT_FOUND'
    """
    No flag with the requested key exists in the data store.
    """

    MALFORMED_FLAG = 'MALFORMED_FLAG'
    """
    The flag data was inconsistent, for instance a variation index out of range.
    """

    USER_NOT_SPECIFIED = 'USER_NOT_SPECIFIED'
    """
    The context was missing or invalid.
    """

    WRONG_TYPE = 'WRONG_TYPE'
    """
    The flag value was not of the type requested by a typed accessor.
    """

    EXCEPTION = 'EXCEPTION'
    """
    An unexpected exception stopped evaluation.
    """


def error_reason(kind: ErrorKind) -> dict:
    return {'kind': 'ERROR', 'errorKind': kind.value}


class EvaluationDetail:
    """
    The return type of :func:`flagclient.client.FlagClient.variation_detail()` and the other
    ``_detail`` methods, combining the result of a flag evaluation with information about how it
    was calculated.
    """

    def __init__(self, value: Any, variation_index: Optional[int], reason: dict):
        """Constructs an instance."""
        self.__value = value
        self.__variation_index = variation_index
        self.__reason = reason

    @property
    def value(self) -> Any:
        """The result of the flag evaluation. This will be either one of the flag's variations or
        the default value that was passed to the evaluation method.
        """
        return self.__value

    @property
    def variation_index(self) -> Optional[int]:
        """The index of the returned value within the flag's list of variations, e.g.
        0 for the first variation -- or None if the default value was returned.
        """
        return self.__variation_index

    @property
    def reason(self) -> dict:
        """A dictionary describing the main factor that influenced the flag evaluation value.

        * ``kind``: The general category of reason, as follows:

          * ``'OFF'``: the flag was off
          * ``'FALLTHROUGH'``: the flag was on but the context did not match any targets or rules
          * ``'TARGET_MATCH'``: the context was specifically targeted for this flag
          * ``'RULE_MATCH'``: the context matched one of the flag's rules
          * ``'PREREQUISITE_FAILED'``: the flag was considered off because one of its prerequisites
            was off or did not return the desired variation
          * ``'ERROR'``: the flag could not be evaluated

        * ``ruleIndex``, ``ruleId``: for ``'RULE_MATCH'``, the positional index and id of the
          matched rule
        * ``prerequisiteKey``: for ``'PREREQUISITE_FAILED'``, the key of the failed prerequisite
        * ``errorKind``: for ``'ERROR'``, one of the :class:`ErrorKind` values
        """
        return self.__reason

    def is_default_value(self) -> bool:
        """Returns True if the flag evaluated to the default value rather than one of its
        variations.
        """
        return self.__variation_index is None

    def __eq__(self, other) -> bool:
        return isinstance(other, EvaluationDetail) and self.value == other.value and self.variation_index == other.variation_index and self.reason == other.reason

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)

    def __str__(self) -> str:
        return "(value=%s, variation_index=%s, reason=%s)" % (self.value, self.variation_index, self.reason)

    def __repr__(self) -> str:
        return self.__str__()


class FeatureFlagsState:
    """
    A snapshot of the state of all feature flags with regard to a specific context, generated by
    calling :func:`flagclient.client.FlagClient.all_flags_state()`. Serializing this object to
    JSON using :func:`to_json_dict()` or :func:`to_json_string()` produces the appropriate data
    structure for bootstrapping a client-side SDK.
    """

    def __init__(self, valid: bool):
        self.__flag_values = {}  # type: Dict[str, Any]
        self.__flag_metadata = {}  # type: Dict[str, Any]
        self.__valid = valid

    # Used internally to build the state map
    def add_flag(self, flag_state: dict, with_reasons: bool, details_only_if_tracked: bool):
        key = flag_state['key']
        self.__flag_values[key] = flag_state['value']
        meta = {}

        track_events = flag_state.get('trackEvents', False)
        debug_events_until_date = flag_state.get('debugEventsUntilDate')
        omit_details = details_only_if_tracked and not (track_events or debug_events_until_date is not None)

        if not omit_details:
            meta['version'] = flag_state['version']
            if with_reasons and flag_state.get('reason') is not None:
                meta['reason'] = flag_state['reason']

        if flag_state.get('variation') is not None:
            meta['variation'] = flag_state['variation']
        if track_events:
            meta['trackEvents'] = True
        if debug_events_until_date is not None:
            meta['debugEventsUntilDate'] = debug_events_until_date
        if flag_state.get('prerequisites'):
            meta['prerequisites'] = flag_state['prerequisites']

        self.__flag_metadata[key] = meta

    @property
    def valid(self) -> bool:
        """True if this object contains a valid snapshot of feature flag state, or False if the
        state could not be computed (for instance, because the client was offline or there was no
        context).
        """
        return self.__valid

    def get_flag_value(self, key: str) -> Any:
        """Returns the value of an individual feature flag at the time the state was recorded.

        :param key: the feature flag key
        :return: the flag's value; None if the flag returned the default value, or if there was no
          such flag
        """
        return self.__flag_values.get(key)

    def get_flag_reason(self, key: str) -> Optional[dict]:
        """Returns the evaluation reason for an individual feature flag at the time the state was
        recorded, if reasons were requested with the ``with_reasons`` option.
        """
        meta = self.__flag_metadata.get(key)
        return None if meta is None else meta.get('reason')

    def to_values_map(self) -> dict:
        """Returns a dictionary of flag keys to flag values. If the flag would have evaluated to the
        default value, its value will be None.
        """
        return dict(self.__flag_values)

    def to_json_dict(self) -> dict:
        """Returns a dictionary suitable for passing as JSON, in the format used by client-side SDKs
        for bootstrapping.
        """
        ret = self.__flag_values.copy()
        ret['$flagsState'] = self.__flag_metadata
        ret['$valid'] = self.__valid
        return ret

    def to_json_string(self) -> str:
        """Same as to_json_dict, but serializes the JSON structure into a string."""
        return json.dumps(self.to_json_dict())


__all__ = ['ErrorKind', 'EvaluationDetail', 'FeatureFlagsState', 'error_reason']
