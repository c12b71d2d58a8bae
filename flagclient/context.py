"""
This submodule implements the evaluation context model.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_INVALID_KIND_REGEX = re.compile('[^-a-zA-Z0-9._]')


def _validate_kind(kind: str) -> Optional[str]:
    if kind == '':
        return 'context kind must not be empty'
    if kind == 'kind':
        return '"kind" is not a valid context kind'
    if _INVALID_KIND_REGEX.search(kind):
        return 'context kind contains disallowed characters'
    return None


class Context:
    """
    A collection of attributes that can be referenced in flag evaluations and analytics events.
    This entity is also called an "evaluation context."

    Use :func:`create()` when only the key and kind are relevant, or :func:`builder()` to set other
    attributes.

    A Context can be in an error state if it was built with invalid attributes; see :attr:`valid`
    and :attr:`error`. An empty string is a valid key, but a missing key is not.

    A Context is immutable once created.
    """

    DEFAULT_KIND = 'user'
    """A constant for the default context kind of "user"."""

    def __init__(
        self,
        kind: Optional[str],
        key: Optional[str],
        name: Optional[str] = None,
        anonymous: bool = False,
        attributes: Optional[dict] = None,
    ):
        """
        Constructs an instance, setting all properties. Application code should normally use
        :func:`create()`, :func:`builder()` or :func:`from_dict()` instead.
        """
        self.__kind = kind or Context.DEFAULT_KIND
        self.__key = key
        self.__name = name
        self.__anonymous = anonymous
        self.__attributes = attributes
        self.__error = None  # type: Optional[str]

        kind_error = _validate_kind(self.__kind)
        if kind_error:
            self.__error = kind_error
        elif key is None:
            self.__error = 'context key must not be None'
        elif not isinstance(key, str):
            self.__error = 'context key must be a string'
        elif name is not None and not isinstance(name, str):
            self.__error = 'context name must be a string'

    @classmethod
    def create(cls, key: Optional[str], kind: Optional[str] = None) -> Context:
        """
        Creates a single-kind Context with only the key and the kind specified.

        :param key: the context key
        :param kind: the context kind; if omitted, it is :const:`DEFAULT_KIND` ("user")
        """
        return Context(kind, key)

    @classmethod
    def from_dict(cls, props: dict) -> Context:
        """
        Creates a Context from properties in a dictionary, corresponding to the JSON
        representation of a context: ``key`` and optionally ``kind``, ``name``, ``anonymous``,
        with all other properties treated as custom attributes.

        :param props: the context properties
        """
        attributes = {k: v for k, v in props.items() if k not in ('kind', 'key', 'name', 'anonymous')}
        anonymous = props.get('anonymous', False)
        if not isinstance(anonymous, bool):
            return Context(props.get('kind'), None)
        return Context(props.get('kind'), props.get('key'), props.get('name'), anonymous, attributes or None)

    @classmethod
    def builder(cls, key: str) -> ContextBuilder:
        """
        Creates a builder for building a Context.

        :param key: the context key
        """
        return ContextBuilder(key)

    @property
    def valid(self) -> bool:
        """
        True for a valid Context, or False for an invalid one. An invalid Context is rejected by
        evaluation and analytics methods, which log a warning and use default values.
        """
        return self.__error is None

    @property
    def error(self) -> Optional[str]:
        """
        Returns None for a valid Context, or an error message for an invalid one.
        """
        return self.__error

    @property
    def kind(self) -> str:
        return self.__kind

    @property
    def key(self) -> Optional[str]:
        return self.__key

    @property
    def name(self) -> Optional[str]:
        return self.__name

    @property
    def anonymous(self) -> bool:
        return self.__anonymous

    @property
    def fully_qualified_key(self) -> str:
        """
        A string that identifies the Context uniquely across kinds. For a user it is the plain
        key; for other kinds it is ``kind:key``.
        """
        if self.__kind == Context.DEFAULT_KIND:
            return self.__key or ''
        return '%s:%s' % (self.__kind, (self.__key or '').replace('%', '%25').replace(':', '%3A'))

    def get(self, attribute: str) -> Any:
        """
        Looks up the value of a built-in or custom attribute by name. Returns None if it has no
        value.
        """
        if attribute == 'key':
            return self.__key
        if attribute == 'kind':
            return self.__kind
        if attribute == 'name':
            return self.__name
        if attribute == 'anonymous':
            return self.__anonymous
        if self.__attributes is None:
            return None
        return self.__attributes.get(attribute)

    def to_dict(self) -> Dict[str, Any]:
        ret = {'kind': self.__kind, 'key': self.__key}  # type: Dict[str, Any]
        if self.__name is not None:
            ret['name'] = self.__name
        if self.__anonymous:
            ret['anonymous'] = True
        if self.__attributes:
            ret.update(self.__attributes)
        return ret

    def to_json_string(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))

    def __getitem__(self, attribute) -> Any:
        return self.get(attribute) if isinstance(attribute, str) else None

    def __repr__(self) -> str:
        if not self.valid:
            return "[invalid context: %s]" % self.__error
        return self.to_json_string()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Context):
            return False
        return self.__error == other.__error and self.to_dict() == other.to_dict()

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)


class ContextBuilder:
    """
    A mutable object that uses the builder pattern to specify properties for :class:`Context`.

    Obtain an instance by calling :func:`Context.builder()`; then, call setter methods such as
    :func:`name()` or :func:`set()` to specify any additional attributes; then, call
    :func:`build()` to create the Context.
    """

    def __init__(self, key: str):
        self.__key = key
        self.__kind = Context.DEFAULT_KIND
        self.__name = None  # type: Optional[str]
        self.__anonymous = False
        self.__attributes = None  # type: Optional[Dict[str, Any]]

    def build(self) -> Context:
        return Context(self.__kind, self.__key, self.__name, self.__anonymous, dict(self.__attributes) if self.__attributes else None)

    def kind(self, kind: str) -> ContextBuilder:
        self.__kind = kind
        return self

    def name(self, name: Optional[str]) -> ContextBuilder:
        self.__name = name
        return self

    def anonymous(self, anonymous: bool) -> ContextBuilder:
        self.__anonymous = anonymous
        return self

    def set(self, attribute: str, value: Any) -> ContextBuilder:
        """
        Sets the value of any attribute for the Context. ``kind``, ``key``, ``name`` and
        ``anonymous`` are routed to their dedicated setters.
        """
        if attribute == 'kind':
            return self.kind(value)
        if attribute == 'key':
            self.__key = value
            return self
        if attribute == 'name':
            return self.name(value)
        if attribute == 'anonymous':
            return self.anonymous(value is True)
        if self.__attributes is None:
            self.__attributes = {}
        if value is None:
            self.__attributes.pop(attribute, None)
        else:
            self.__attributes[attribute] = value
        return self


__all__ = ['Context', 'ContextBuilder']
