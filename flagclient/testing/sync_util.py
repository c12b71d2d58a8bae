import time
from threading import Event

# Polling helpers for tests that observe work done on background threads.


def wait_until(condition, timeout=5, interval=0.05):
    """Calls ``condition`` until it returns a truthy value, which is returned."""
    deadline = time.monotonic() + timeout
    result = condition()
    while not result:
        if time.monotonic() > deadline:
            raise AssertionError("condition %s was not met within %s seconds" % (getattr(condition, '__name__', condition), timeout))  # pragma: no cover
        time.sleep(interval)
        result = condition()
    return result


def drain(runner, timeout=5):
    """Waits until every task submitted to an OrderedTaskRunner so far has run."""
    marker = Event()
    runner.submit(marker.set)
    assert marker.wait(timeout), "task runner did not drain within %s seconds" % timeout
