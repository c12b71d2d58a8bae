import json
from typing import Any, List, Optional, Union

# FeatureFlag and Segment wrap the dict they were decoded from. Their constructors read every
# property the evaluator needs up front, so a malformed item is rejected when the data set arrives
# rather than when a flag is evaluated. The dict itself is kept for re-serialization and for
# dict-style access by data stores.

_TYPE_NAMES = {bool: 'boolean', int: 'integer', str: 'string', list: 'array', dict: 'object'}


class MalformedDataError(ValueError):
    """A flag or segment property is missing or has the wrong JSON type."""

    def __init__(self, name: str, problem: str):
        super().__init__('invalid flag/segment data: property "%s" %s' % (name, problem))
        self.property_name = name


def _type_name(t) -> str:
    return _TYPE_NAMES.get(t, t.__name__)


def _is_type(value: Any, desired_type) -> bool:
    # bool is a subclass of int, but JSON keeps them apart
    if desired_type is int and isinstance(value, bool):
        return False
    return isinstance(value, desired_type)


def opt_type(data: dict, name: str, desired_type) -> Any:
    value = data.get(name)
    if value is None or _is_type(value, desired_type):
        return value
    raise MalformedDataError(name, 'should be %s but was %s' % (_type_name(desired_type), _type_name(type(value))))


def req_type(data: dict, name: str, desired_type) -> Any:
    value = opt_type(data, name, desired_type)
    if value is None:
        raise MalformedDataError(name, 'is required')
    return value


def opt_bool(data: dict, name: str) -> bool:
    return opt_type(data, name, bool) is True


def opt_int(data: dict, name: str) -> Optional[int]:
    return opt_type(data, name, int)


def opt_number(data: dict, name: str) -> Optional[Union[int, float]]:
    value = data.get(name)
    if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise MalformedDataError(name, 'should be a number but was %s' % _type_name(type(value)))
    return value


def opt_str(data: dict, name: str) -> Optional[str]:
    return opt_type(data, name, str)


def opt_dict(data: dict, name: str) -> Optional[dict]:
    return opt_type(data, name, dict)


def opt_list(data: dict, name: str) -> list:
    return opt_type(data, name, list) or []


def opt_dict_list(data: dict, name: str) -> List[dict]:
    return validate_list_type(opt_list(data, name), name, dict)


def opt_str_list(data: dict, name: str) -> List[str]:
    return validate_list_type(opt_list(data, name), name, str)


def req_int(data: dict, name: str) -> int:
    return req_type(data, name, int)


def req_str(data: dict, name: str) -> str:
    return req_type(data, name, str)


def req_list(data: dict, name: str) -> list:
    return req_type(data, name, list)


def validate_list_type(items: list, name: str, desired_type) -> list:
    for index, item in enumerate(items):
        if not _is_type(item, desired_type):
            raise MalformedDataError(name, 'should contain only %s values but item %d was %s' % (_type_name(desired_type), index, _type_name(type(item))))
    return items


class ModelEntity:
    """Base class for decoded data items; it can still be read like the dict it came from."""

    def __init__(self, data: dict):
        self._data = data

    def to_json_dict(self) -> dict:
        return self._data

    def get(self, attribute: str, default: Any = None) -> Any:
        return self._data.get(attribute, default)

    def __getitem__(self, attribute: str) -> Any:
        return self._data[attribute]

    def __contains__(self, attribute: str) -> bool:
        return attribute in self._data

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and self._data == other._data

    def __repr__(self) -> str:
        return '%s(%s)' % (self.__class__.__name__, json.dumps(self._data, separators=(',', ':')))
