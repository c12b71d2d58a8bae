"""
Single worker thread that serializes status notifications, flag change notifications and
periodic checks for one client instance.
"""

import heapq
import itertools
import time
from collections import deque
from threading import Condition, Thread
from typing import Callable

from flagclient.impl.util import log


class ScheduledTask:
    __slots__ = ['_action', '_cancelled']

    def __init__(self, action: Callable[[], None]):
        self._action = action
        self._cancelled = False

    def cancel(self):
        """
        Prevents the task from running if it has not started yet.
        """
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __call__(self):
        if not self._cancelled:
            self._action()


class OrderedTaskRunner:
    """
    Runs tasks one at a time on a dedicated daemon thread, in the order they were submitted.

    Delayed tasks join the end of the queue when their delay elapses, so they never overtake a task
    that was already waiting. The runner is never used for flag evaluation.
    """

    def __init__(self, name: str = 'flagclient.tasks'):
        self.__cond = Condition()
        self.__ready = deque()  # type: deque
        self.__delayed = []  # type: list
        self.__counter = itertools.count()
        self.__stopped = False
        self.__thread = Thread(target=self._run, name=name)
        self.__thread.daemon = True
        self.__thread.start()

    @property
    def stopped(self) -> bool:
        with self.__cond:
            return self.__stopped

    def submit(self, action: Callable[[], None]) -> bool:
        """
        Queues a task to run as soon as all previously queued tasks have finished.

        :return: False if the runner has been shut down and the task was discarded
        """
        with self.__cond:
            if self.__stopped:
                log.debug("Task submitted after task runner shut down; discarding it")
                return False
            self.__ready.append(action)
            self.__cond.notify()
        return True

    def schedule(self, delay: float, action: Callable[[], None]) -> ScheduledTask:
        """
        Queues a task to run once after the given number of seconds.

        :return: a handle whose ``cancel()`` method prevents the task from running
        """
        task = ScheduledTask(action)
        with self.__cond:
            if self.__stopped:
                task.cancel()
                return task
            heapq.heappush(self.__delayed, (time.monotonic() + max(delay, 0), next(self.__counter), task))
            self.__cond.notify()
        return task

    def shutdown_now(self):
        """
        Stops the worker thread. Tasks that have not started yet are discarded.
        """
        with self.__cond:
            self.__stopped = True
            self.__ready.clear()
            self.__delayed.clear()
            self.__cond.notify_all()

    def _next_task(self):
        with self.__cond:
            while not self.__stopped:
                now = time.monotonic()
                while self.__delayed and self.__delayed[0][0] <= now:
                    self.__ready.append(heapq.heappop(self.__delayed)[2])
                if self.__ready:
                    return self.__ready.popleft()
                timeout = self.__delayed[0][0] - now if self.__delayed else None
                self.__cond.wait(timeout)
            return None

    def _run(self):
        while True:
            task = self._next_task()
            if task is None:
                return
            try:
                task()
            except Exception as e:
                log.exception("Unexpected error in task runner: %s" % e)
