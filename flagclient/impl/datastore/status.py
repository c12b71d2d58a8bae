from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from flagclient.impl.listeners import Listeners
from flagclient.impl.rwlock import ReadWriteLock
from flagclient.impl.util import log
from flagclient.interfaces import (DataStoreStatus, DataStoreStatusProvider,
                                   DataStoreUpdateSink)

if TYPE_CHECKING:
    from flagclient.client import _DataStoreClientWrapper


class DataStoreUpdateSinkImpl(DataStoreUpdateSink):
    """
    Holds the latest data store status. A status equal to the current one is ignored, so listeners
    only hear about actual transitions.
    """

    def __init__(self, listeners: Listeners):
        self.__listeners = listeners
        self.__lock = ReadWriteLock()
        self.__status = DataStoreStatus(True, False)

    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__listeners.remove(listener)

    def status(self) -> DataStoreStatus:
        with self.__lock.read():
            return self.__status

    def update_status(self, status: DataStoreStatus):
        with self.__lock.write():
            if status == self.__status:
                return
            self.__status = status
            log.debug("Data store status changed: %s", status)
            self.__listeners.notify(status)


class DataStoreStatusProviderImpl(DataStoreStatusProvider):
    def __init__(self, store: _DataStoreClientWrapper, update_sink: DataStoreUpdateSinkImpl):
        self.__store = store
        self.__update_sink = update_sink

    @property
    def status(self) -> DataStoreStatus:
        return self.__update_sink.status()

    def is_monitoring_enabled(self) -> bool:
        return self.__store.is_monitoring_enabled()

    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.add_listener(listener)

    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.remove_listener(listener)
