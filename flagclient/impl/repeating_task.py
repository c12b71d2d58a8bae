import time
from threading import Event, Thread, current_thread
from typing import Callable, Optional

from flagclient.impl.util import log


class RepeatingTask:
    """
    Calls a function at a fixed rate on its own daemon thread until stopped.

    The interval is measured from the start of one call to the start of the next, so a slow call
    shortens the following wait instead of pushing every later call back.
    """

    def __init__(self, label: str, interval: float, initial_delay: float, action: Callable[[], None]):
        self.__interval = interval
        self.__initial_delay = initial_delay
        self.__action = action
        self.__stopped = Event()
        self.__thread = Thread(target=self._run, name="%s.repeating" % label)
        self.__thread.daemon = True

    @property
    def stopped(self) -> bool:
        return self.__stopped.is_set()

    def start(self):
        self.__thread.start()

    def stop(self, join_timeout: Optional[float] = None):
        """
        Stops the task; it cannot be restarted. If ``join_timeout`` is given, waits up to that long
        for a call that is in progress to finish, unless called from the task's own thread.
        """
        self.__stopped.set()
        if join_timeout is not None and self.__thread.is_alive():
            if self.__thread is not current_thread():
                self.__thread.join(join_timeout)

    def _run(self):
        if self.__initial_delay > 0 and self.__stopped.wait(self.__initial_delay):
            return
        while not self.__stopped.is_set():
            started_at = time.monotonic()
            try:
                self.__action()
            except Exception as e:
                log.exception("Unexpected exception on worker thread: %s" % e)
            remaining = self.__interval - (time.monotonic() - started_at)
            if remaining > 0:
                self.__stopped.wait(remaining)
