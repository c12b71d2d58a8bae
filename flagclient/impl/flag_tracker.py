from threading import Lock
from typing import Any, Callable

from flagclient.context import Context
from flagclient.impl.listeners import Listeners
from flagclient.interfaces import FlagChange, FlagTracker, FlagValueChange

_Evaluate = Callable[[str, Context], Any]


class FlagValueChangeListener:
    """
    A :class:`FlagChange` listener that watches one flag's value for one context. It remembers
    the value from the previous evaluation and calls the wrapped function only when it differs.
    """

    def __init__(self, key: str, context: Context, listener: Callable[[FlagValueChange], None], eval_fn: _Evaluate):
        self.__key = key
        self.__context = context
        self.__listener = listener
        self.__eval_fn = eval_fn
        self.__last_value_lock = Lock()
        self.__last_value = eval_fn(key, context)

    @property
    def key(self) -> str:
        return self.__key

    def __swap_value(self, value: Any) -> Any:
        with self.__last_value_lock:
            previous = self.__last_value
            self.__last_value = value
            return previous

    def __call__(self, flag_change: FlagChange):
        if flag_change.key == self.__key:
            current = self.__eval_fn(self.__key, self.__context)
            previous = self.__swap_value(current)
            if previous != current:
                self.__listener(FlagValueChange(self.__key, previous, current))


class FlagTrackerImpl(FlagTracker):
    def __init__(self, listeners: Listeners, eval_fn: _Evaluate):
        self.__listeners = listeners
        self.__eval_fn = eval_fn

    def add_listener(self, listener: Callable[[FlagChange], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[FlagChange], None]):
        self.__listeners.remove(listener)

    def add_flag_value_change_listener(self, key: str, context: Context, fn: Callable[[FlagValueChange], None]) -> Callable[[FlagChange], None]:
        """
        The initial value is computed now, so changes are reported relative to the value at the
        time of registration. Pass the returned object to :func:`remove_listener` to stop.
        """
        watcher = FlagValueChangeListener(key, context, fn, self.__eval_fn)
        self.add_listener(watcher)
        return watcher
