import time
from threading import Condition, Lock
from typing import Callable, Dict, Mapping, Optional, Set, Tuple

from flagclient.impl.dependency_tracker import (DependencyTracker,
                                                affected_flag_keys)
from flagclient.impl.listeners import Listeners
from flagclient.impl.rwlock import ReadWriteLock
from flagclient.impl.task_runner import OrderedTaskRunner, ScheduledTask
from flagclient.impl.util import log
from flagclient.interfaces import (DataSourceErrorInfo, DataSourceErrorKind,
                                   DataSourceState, DataSourceStatus,
                                   DataSourceStatusProvider,
                                   DataSourceUpdateSink, DataStore, FlagChange)
from flagclient.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind


class OutageTracker:
    """
    Counts the errors seen while the data source is interrupted. If the interruption lasts longer
    than ``timeout`` seconds, a single error-level message summarizing them is logged from the task
    runner.
    """

    def __init__(self, runner: OrderedTaskRunner, timeout: Optional[float]):
        self.__runner = runner
        self.__timeout = timeout
        self.__lock = Lock()
        self.__in_outage = False
        self.__error_counts: Dict[Tuple[DataSourceErrorKind, int], int] = {}
        self.__timer: Optional[ScheduledTask] = None

    def track_data_source_state(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        if not self.__timeout:
            return
        with self.__lock:
            if new_state == DataSourceState.INTERRUPTED or new_error is not None or (new_state == DataSourceState.INITIALIZING and self.__in_outage):
                if not self.__in_outage:
                    self.__in_outage = True
                    self.__error_counts.clear()
                    self.__timer = self.__runner.schedule(self.__timeout, self.__on_timeout)
                self.__record_error(new_error)
            else:
                if self.__timer is not None:
                    self.__timer.cancel()
                    self.__timer = None
                self.__in_outage = False

    def __record_error(self, error: Optional[DataSourceErrorInfo]):
        if error is None:
            return
        error_key = (error.kind, error.status_code)
        self.__error_counts[error_key] = self.__error_counts.get(error_key, 0) + 1

    def __on_timeout(self):
        with self.__lock:
            if self.__timer is None or not self.__in_outage:
                return
            self.__timer = None
            summary = self.__describe_errors()
        log.error(
            "The data source has not been able to reconnect within %s seconds after the connection was interrupted. The following errors were encountered: %s",
            self.__timeout,
            summary,
        )

    def __describe_errors(self) -> str:
        parts = []
        for (kind, status_code), count in sorted(self.__error_counts.items(), key=lambda e: (e[0][0].value, e[0][1])):
            name = kind.name if status_code == 0 else "%s(%d)" % (kind.name, status_code)
            parts.append("%s (%d %s)" % (name, count, "time" if count == 1 else "times"))
        return ", ".join(parts)


class DataSourceUpdateSinkImpl(DataSourceUpdateSink):
    def __init__(self, store: DataStore, status_listeners: Listeners, flag_change_listeners: Listeners, outage_tracker: Optional[OutageTracker] = None):
        self.__store = store
        self.__status_listeners = status_listeners
        self.__flag_change_listeners = flag_change_listeners
        self.__outage_tracker = outage_tracker
        self.__tracker = DependencyTracker()

        self.__lock = ReadWriteLock()
        self.__state_changed = Condition()
        self.__status = DataSourceStatus(DataSourceState.INITIALIZING, time.time(), None)

    @property
    def status(self) -> DataSourceStatus:
        with self.__lock.read():
            return self.__status

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        old_data: Optional[Dict[VersionedDataKind, Mapping[str, dict]]] = None

        def init_store():
            nonlocal old_data
            if self.__flag_change_listeners.has_listeners():
                old_data = dict((kind, self.__store.all(kind)) for kind in [FEATURES, SEGMENTS])
            self.__store.init(all_data)

        self.__monitor_store_update(init_store)

        self.__tracker.reset()
        for kind, items in all_data.items():
            for key, item in items.items():
                self.__tracker.update_dependencies_from(kind, key, item)

        if old_data is not None:
            self.__send_change_events(self.__changed_flags_for_full_data_set(old_data, all_data))

    def upsert(self, kind: VersionedDataKind, item: dict):
        self.__monitor_store_update(lambda: self.__store.upsert(kind, item))
        self.__update_dependency_for_single_item(kind, item.get('key', ''), item)

    def delete(self, kind: VersionedDataKind, key: str, version: int):
        self.__monitor_store_update(lambda: self.__store.delete(kind, key, version))
        self.__update_dependency_for_single_item(kind, key, None)

    def update_status(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        with self.__lock.write():
            old_status = self.__status

            if new_state == DataSourceState.INTERRUPTED and old_status.state == DataSourceState.INITIALIZING:
                new_state = DataSourceState.INITIALIZING

            if new_state == old_status.state and new_error is None:
                return

            since = old_status.since if new_state == old_status.state else time.time()
            self.__status = DataSourceStatus(new_state, since, old_status.error if new_error is None else new_error)

            # Tracker and listeners must see transitions in the order they were stored.
            if self.__outage_tracker is not None:
                self.__outage_tracker.track_data_source_state(new_state, new_error)
            self.__status_listeners.notify(self.__status)

        # Outside the write lock: wait_for reads status while holding the condition.
        with self.__state_changed:
            self.__state_changed.notify_all()

    def wait_for(self, desired_state: DataSourceState, timeout: float) -> bool:
        deadline = None if timeout <= 0 else time.monotonic() + timeout
        with self.__state_changed:
            while True:
                state = self.status.state
                if state == desired_state:
                    return True
                if state == DataSourceState.OFF:
                    return False
                if deadline is None:
                    self.__state_changed.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self.__state_changed.wait(remaining)

    def __monitor_store_update(self, fn: Callable[[], None]):
        try:
            fn()
        except Exception as e:
            error_info = DataSourceErrorInfo(DataSourceErrorKind.STORE_ERROR, 0, time.time(), str(e))
            self.update_status(DataSourceState.INTERRUPTED, error_info)
            raise

    def __update_dependency_for_single_item(self, kind: VersionedDataKind, key: str, item: Optional[dict]):
        self.__tracker.update_dependencies_from(kind, key, item)
        if self.__flag_change_listeners.has_listeners():
            self.__send_change_events(affected_flag_keys(self.__tracker, kind, key))

    def __send_change_events(self, flag_keys: Set[str]):
        for key in sorted(flag_keys):
            self.__flag_change_listeners.notify(FlagChange(key))

    def __changed_flags_for_full_data_set(self, old_data: Mapping[VersionedDataKind, Mapping[str, dict]], new_data: Mapping[VersionedDataKind, Mapping[str, dict]]) -> Set[str]:
        flag_keys: Set[str] = set()
        for kind in [FEATURES, SEGMENTS]:
            old_items = old_data.get(kind, {})
            new_items = dict((k, i) for k, i in new_data.get(kind, {}).items() if not i.get('deleted', False))
            for key in set(old_items.keys()).union(new_items.keys()):
                old_item = old_items.get(key)
                new_item = new_items.get(key)
                if old_item is None or new_item is None or old_item['version'] < new_item['version']:
                    flag_keys.update(affected_flag_keys(self.__tracker, kind, key))
        return flag_keys


class DataSourceStatusProviderImpl(DataSourceStatusProvider):
    def __init__(self, listeners: Listeners, update_sink: DataSourceUpdateSinkImpl):
        self.__listeners = listeners
        self.__update_sink = update_sink

    @property
    def status(self) -> DataSourceStatus:
        return self.__update_sink.status

    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.remove(listener)

    def wait_for(self, desired_state: DataSourceState, timeout: float) -> bool:
        return self.__update_sink.wait_for(desired_state, timeout)
