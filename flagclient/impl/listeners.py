from threading import Lock
from typing import Any, Callable, List

from flagclient.impl.task_runner import OrderedTaskRunner
from flagclient.impl.util import log


class Listeners:
    """
    Fan-out of a single value to a set of callbacks. Delivery happens on the shared
    :class:`OrderedTaskRunner`, never on the publishing thread, so every listener sees values in
    the order they were published and no two notifications overlap.

    Listeners are called in registration order; registering the same callable twice has no effect.
    """

    def __init__(self, runner: OrderedTaskRunner):
        self.__runner = runner
        self.__lock = Lock()
        self.__registered = []  # type: List[Callable]

    def has_listeners(self) -> bool:
        with self.__lock:
            return bool(self.__registered)

    def add(self, listener: Callable):
        with self.__lock:
            if listener not in self.__registered:
                self.__registered = self.__registered + [listener]

    def remove(self, listener: Callable):
        with self.__lock:
            self.__registered = [l for l in self.__registered if l != listener]

    def notify(self, value: Any):
        # the list is replaced, never mutated, so the snapshot is safe to use outside the lock
        with self.__lock:
            snapshot = self.__registered
        if snapshot:
            self.__runner.submit(lambda: _deliver(snapshot, value))


def _deliver(listeners: List[Callable], value: Any):
    for listener in listeners:
        try:
            listener(value)
        except Exception as e:
            log.exception("Unexpected error in listener for %s: %s", type(value).__name__, e)
