import pytest

from flagclient.context import Context
from flagclient.impl.flag_tracker import FlagTrackerImpl
from flagclient.impl.listeners import Listeners
from flagclient.impl.task_runner import OrderedTaskRunner
from flagclient.interfaces import FlagChange
from flagclient.testing.sync_util import drain
from flagclient.testing.test_util import SpyListener

user = Context.create('tracked-user')


class ScriptedValues:
    """Evaluation function that returns the given values in order and records its arguments."""

    def __init__(self, *values):
        self.values = list(values)
        self.requests = []

    def __call__(self, key, context):
        self.requests.append((key, context))
        return self.values.pop(0)


@pytest.fixture
def runner():
    runner = OrderedTaskRunner()
    yield runner
    runner.shutdown_now()


@pytest.fixture
def listeners(runner):
    return Listeners(runner)


def publish(runner, listeners, *keys):
    for key in keys:
        listeners.notify(FlagChange(key))
    drain(runner)


def changes(spy):
    return [(c.key, c.old_value, c.new_value) for c in spy.statuses]


def test_removed_flag_change_listener_stops_receiving(runner, listeners):
    spy = SpyListener()
    tracker = FlagTrackerImpl(listeners, ScriptedValues())
    tracker.add_listener(spy)
    publish(runner, listeners, 'a', 'b')

    tracker.remove_listener(spy)
    publish(runner, listeners, 'c')

    assert [c.key for c in spy.statuses] == ['a', 'b']


def test_value_listener_evaluates_once_at_registration(listeners):
    values = ScriptedValues('v1')
    FlagTrackerImpl(listeners, values).add_flag_value_change_listener('f', user, SpyListener())
    assert values.requests == [('f', user)]


def test_value_listener_reports_only_actual_changes(runner, listeners):
    spy = SpyListener()
    tracker = FlagTrackerImpl(listeners, ScriptedValues('v1', 'v2', 'v2', 'v3'))
    tracker.add_flag_value_change_listener('f', user, spy)
    assert spy.statuses == []

    publish(runner, listeners, 'f', 'f', 'f')

    assert changes(spy) == [('f', 'v1', 'v2'), ('f', 'v2', 'v3')]


def test_value_listener_ignores_changes_to_other_flags(runner, listeners):
    spy = SpyListener()
    values = ScriptedValues('v1')
    FlagTrackerImpl(listeners, values).add_flag_value_change_listener('f', user, spy)

    publish(runner, listeners, 'g', 'h')

    assert len(values.requests) == 1
    assert spy.statuses == []


def test_value_listener_subscription_can_be_removed(runner, listeners):
    spy = SpyListener()
    tracker = FlagTrackerImpl(listeners, ScriptedValues(1, 2, 3))
    subscription = tracker.add_flag_value_change_listener('f', user, spy)
    assert subscription.key == 'f'

    publish(runner, listeners, 'f')
    tracker.remove_listener(subscription)
    publish(runner, listeners, 'f')

    assert changes(spy) == [('f', 1, 2)]
    assert not listeners.has_listeners()
