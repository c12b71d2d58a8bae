from concurrent.futures import Future
from typing import Any, Mapping

from flagclient.interfaces import (DataSource, DataStore, EventProcessor)
from flagclient.versioned_data_kind import VersionedDataKind


class NullEventProcessor(EventProcessor):
    def send_event(self, event):
        pass

    def flush(self):
        pass

    def close(self):
        pass


class NullDataSource(DataSource):
    """
    Used in offline mode and when the data store is populated by another process. It is always
    initialized, so evaluations read whatever the store contains.
    """

    def __init__(self, config=None, update_sink=None):
        pass

    def start(self) -> Future:
        ready: Future = Future()
        ready.set_result(True)
        return ready

    def initialized(self) -> bool:
        return True

    def close(self):
        pass


class NullDataStore(DataStore):
    """
    A store that holds nothing and never becomes initialized.
    """

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        return None

    def all(self, kind: VersionedDataKind) -> Mapping[str, Any]:
        return {}

    def init(self, all_data):
        pass

    def upsert(self, kind: VersionedDataKind, item: dict):
        pass

    def delete(self, kind: VersionedDataKind, key: str, version: int):
        pass

    @property
    def initialized(self) -> bool:
        return False
