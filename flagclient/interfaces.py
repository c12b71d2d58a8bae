"""
This submodule contains interfaces for the pluggable components of the client, and the status
types they publish.

Applications implement these only to plug in a custom component or a test double.
"""

from abc import ABCMeta, abstractmethod
from concurrent.futures import Future
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from flagclient.context import Context
from flagclient.versioned_data_kind import VersionedDataKind

if TYPE_CHECKING:
    from flagclient.impl.evaluator import EvalResult
    from flagclient.impl.events.types import EventFactory


class DataStore(metaclass=ABCMeta):
    """
    Interface for a versioned store of feature flags and segments. Implementations must permit
    concurrent reads while the data source is writing.

    An item is a dict (or model object) with at least a ``key``, a ``version``, and optionally
    ``deleted`` (True if it is a placeholder for a deleted item). Upserts and deletes are
    versioned: a request whose version is not greater than the stored version is ignored.
    """

    @abstractmethod
    def get(self, kind: VersionedDataKind, key: str) -> Any:
        """
        Retrieves the item with the specified key, or None if the key is not found or the item is
        a deleted placeholder.

        :param kind: The kind of item to get
        :param key: The item's key
        """

    @abstractmethod
    def all(self, kind: VersionedDataKind) -> Mapping[str, Any]:
        """
        Retrieves a dictionary of all non-deleted items of the given kind, keyed by item key.

        :param kind: The kind of items to get
        """

    @abstractmethod
    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        """
        Replaces the whole contents of the store. Implementations can assume the data set is up to
        date; there is no need to compare versions.

        :param all_data: All items to be stored, by kind and key
        """

    @abstractmethod
    def upsert(self, kind: VersionedDataKind, item: dict):
        """
        Adds or replaces an item, but only if its version is greater than the stored one.

        :param kind: The kind of item to update
        :param item: The item to update or insert
        """

    @abstractmethod
    def delete(self, kind: VersionedDataKind, key: str, version: int):
        """
        Replaces an item with a deleted placeholder, but only if the stored version is lower than
        ``version``.

        :param kind: The kind of item to delete
        :param key: The key of the item
        :param version: The version for the delete operation
        """

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """
        Returns True once the store holds a full data set. A persistent store may report True even
        before the data source connects, if it kept data from a previous run.
        """

    def close(self):
        """
        Releases any resources held by the store.
        """
        pass


class DataSource(metaclass=ABCMeta):
    """
    Interface for the component that obtains flag data and pushes it into the client through a
    :class:`DataSourceUpdateSink`.
    """

    @abstractmethod
    def start(self) -> Future:
        """
        Begins connecting in the background. Must not block.

        :return: a future that completes when the data source has received its first full data
          set, or has failed permanently
        """

    @abstractmethod
    def initialized(self) -> bool:
        """
        Returns True once the data source has successfully delivered a full data set.
        """

    @abstractmethod
    def close(self):
        """
        Permanently shuts down the data source.
        """


class Evaluator(metaclass=ABCMeta):
    """
    Interface for the component that computes a flag's value for a context. It reads other flags
    and segments only through the lookup functions it was constructed with.
    """

    @abstractmethod
    def evaluate(self, flag: Any, context: Context, event_factory: 'EventFactory') -> 'EvalResult':
        """
        Evaluates a flag. Prerequisite evaluation events are returned in the result, not sent.

        :param flag: the decoded flag
        :param context: a valid evaluation context
        :param event_factory: used to build prerequisite evaluation events
        """


class EventProcessor(metaclass=ABCMeta):
    """
    Interface for the component that buffers analytics events and delivers them. Implementations
    must never block the caller of :func:`send_event`.
    """

    @abstractmethod
    def send_event(self, event):
        """
        Queues an event for delivery.
        """

    @abstractmethod
    def flush(self):
        """
        Specifies that any buffered events should be sent as soon as possible. This method is
        asynchronous; :func:`close` is the only call that waits for delivery.
        """

    @abstractmethod
    def close(self):
        """
        Delivers all pending events, then shuts down the event processor.
        """


class DataSourceState(Enum):
    """
    Lifecycle of a data source. The normal path is INITIALIZING, then VALID; INTERRUPTED and VALID
    may alternate after that, and OFF is final.
    """

    INITIALIZING = 'initializing'
    """
    No data set has been received yet. Errors during startup do not leave this state; it ends
    with VALID on success or OFF on a permanent failure.
    """

    VALID = 'valid'
    """
    The most recent request succeeded.
    """

    INTERRUPTED = 'interrupted'
    """
    A request failed after startup and the data source will keep retrying. Flags are served from
    the last data received.
    """

    OFF = 'off'
    """
    Terminal: the data source hit an unrecoverable error (such as a rejected SDK key) or the
    client was closed.
    """


class DataSourceErrorKind(Enum):
    """
    Broad category of a :class:`DataSourceErrorInfo`.
    """

    UNKNOWN = 'unknown'
    """
    Anything not covered below, typically an exception in the data source itself.
    """

    NETWORK_ERROR = 'network_error'
    """
    The request could not be completed at the connection level.
    """

    ERROR_RESPONSE = 'error_response'
    """
    The service returned an HTTP response with an error status.
    """

    INVALID_DATA = 'invalid_data'
    """
    The data source received malformed data.
    """

    STORE_ERROR = 'store_error'
    """
    The data arrived, but writing it to the data store raised an exception. The client reports
    this on the data source's behalf.
    """


class DataSourceErrorInfo:
    """
    Details of the most recent data source failure.
    """

    def __init__(self, kind: DataSourceErrorKind, status_code: int, time: float, message: Optional[str]):
        self.__kind = kind
        self.__status_code = status_code
        self.__time = time
        self.__message = message

    @property
    def kind(self) -> DataSourceErrorKind:
        return self.__kind

    @property
    def status_code(self) -> int:
        """The HTTP status for ``ERROR_RESPONSE``; zero for every other kind."""
        return self.__status_code

    @property
    def time(self) -> float:
        """When the failure happened, in seconds since the epoch."""
        return self.__time

    @property
    def message(self) -> Optional[str]:
        return self.__message

    def __repr__(self) -> str:
        return "DataSourceErrorInfo(%s, %d, %r)" % (self.__kind.value, self.__status_code, self.__message)


class DataSourceStatus:
    """
    Snapshot of a data source's state, when that state began, and the last error seen.
    """

    def __init__(self, state: DataSourceState, state_since: float, last_error: Optional[DataSourceErrorInfo]):
        self.__state = state
        self.__state_since = state_since
        self.__last_error = last_error

    @property
    def state(self) -> DataSourceState:
        return self.__state

    @property
    def since(self) -> float:
        """Seconds since the epoch at which ``state`` was entered. Errors that do not change the
        state leave this untouched."""
        return self.__state_since

    @property
    def error(self) -> Optional[DataSourceErrorInfo]:
        """The most recent error, kept even after the data source recovers; None if there has been
        none."""
        return self.__last_error

    def __repr__(self) -> str:
        return "DataSourceStatus(%s, %s, %r)" % (self.__state.value, self.__state_since, self.__last_error)


class DataSourceStatusProvider(metaclass=ABCMeta):
    """
    Read side of the data source status, available as
    :func:`flagclient.client.FlagClient.data_source_status_provider`.
    """

    @property
    @abstractmethod
    def status(self) -> DataSourceStatus:
        """
        The latest status. A custom data source that never calls
        :func:`DataSourceUpdateSink.update_status` stays at INITIALIZING.
        """

    @abstractmethod
    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Calls ``listener`` with each new status, on the client's task runner thread.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Stops calling ``listener``. Unknown listeners are ignored.
        """

    @abstractmethod
    def wait_for(self, desired_state: DataSourceState, timeout: float) -> bool:
        """
        Blocks until the data source reaches the desired state, it reaches OFF, or the timeout
        expires.

        This lets an application construct the client with ``start_wait=0`` and wait for
        initialization somewhere else.

        :param desired_state: the state to wait for
        :param timeout: the maximum number of seconds to wait; zero or less waits indefinitely
        :return: True if the desired state was reached
        """


class DataSourceUpdateSink(metaclass=ABCMeta):
    """
    The only way a data source delivers data or status. Going through this object instead of the
    store lets the client compute flag change events and track status.
    """

    @abstractmethod
    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        """
        Replaces everything in the store with ``all_data`` (kind to key to item).
        """

    @abstractmethod
    def upsert(self, kind: VersionedDataKind, item: dict):
        """
        Stores one item unless the store already has the same or a newer version.
        """

    @abstractmethod
    def delete(self, kind: VersionedDataKind, key: str, version: int):
        """
        Stores a deletion placeholder for ``key`` unless the store already has the same or a newer
        version.
        """

    @abstractmethod
    def update_status(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        """
        Reports the data source's state, with the error that caused it if there was one.

        Listeners are notified when the state changes or an error is given. INTERRUPTED reported
        while still INITIALIZING is recorded as INITIALIZING, since nothing has been interrupted
        yet.
        """


class FlagChange:
    """
    Passed to :class:`FlagTracker` listeners when a flag's configuration, or anything it depends
    on, was updated.
    """

    def __init__(self, key: str):
        self.__key = key

    @property
    def key(self) -> str:
        return self.__key

    def __repr__(self) -> str:
        return "FlagChange(%s)" % self.__key


class FlagValueChange:
    """
    Passed to a flag value change listener with the values before and after an update.
    """

    def __init__(self, key, old_value, new_value):
        self.__key = key
        self.__old_value = old_value
        self.__new_value = new_value

    @property
    def key(self):
        return self.__key

    @property
    def old_value(self):
        return self.__old_value

    @property
    def new_value(self):
        return self.__new_value

    def __repr__(self) -> str:
        return "FlagValueChange(%s, %r, %r)" % (self.__key, self.__old_value, self.__new_value)


class FlagTracker(metaclass=ABCMeta):
    """
    Subscriptions to flag updates, available as :func:`flagclient.client.FlagClient.flag_tracker`.
    All listeners run on the client's task runner thread.
    """

    @abstractmethod
    def add_listener(self, listener: Callable[[FlagChange], None]):
        """
        Calls ``listener`` with a :class:`FlagChange` for every flag whose configuration changed,
        directly or through a prerequisite or segment. The flag's value for a given context may
        well be unchanged; see :func:`add_flag_value_change_listener`.

        Only happens while the data source is delivering updates. Adding a listener twice has no
        further effect.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[FlagChange], None]):
        """
        Stops calling ``listener``. Unknown listeners are ignored.
        """

    @abstractmethod
    def add_flag_value_change_listener(self, key: str, context: Context, listener: Callable[[FlagValueChange], None]):
        """
        Evaluates flag ``key`` for ``context`` now, and again after each change to the flag;
        ``listener`` is called with a :class:`FlagValueChange` whenever the result differs from
        the previous one.

        :return: a subscription object; pass it (not ``listener``) to :func:`remove_listener` to
          stop
        """


class DataStoreStatus:
    """
    Availability of the data store, as observed by the client.
    """

    def __init__(self, available: bool, stale: bool):
        self.__available = available
        self.__stale = stale

    @property
    def available(self) -> bool:
        """
        False from the first failed store operation until the outage monitor sees the store
        respond again. Always True for stores that do not support monitoring.
        """
        return self.__available

    @property
    def stale(self) -> bool:
        """
        True when the store came back from an outage and may have missed updates, so the data
        source should write a complete data set.
        """
        return self.__stale

    def __eq__(self, other) -> bool:
        return isinstance(other, DataStoreStatus) and self.available == other.available and self.stale == other.stale

    def __ne__(self, other) -> bool:
        return not self.__eq__(other)

    def __repr__(self) -> str:
        return "DataStoreStatus(available=%s, stale=%s)" % (self.__available, self.__stale)


class DataStoreUpdateSink(metaclass=ABCMeta):
    """
    Where store availability is recorded. The client's store wrapper reports through it.
    """

    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        The last status reported.
        """

    @abstractmethod
    def update_status(self, status: DataStoreStatus):
        """
        Records a new status; listeners hear about it only if it differs from the last one.
        """


class DataStoreStatusProvider(metaclass=ABCMeta):
    """
    Read side of the data store status, available as
    :func:`flagclient.client.FlagClient.data_store_status_provider`.
    """

    @property
    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        The latest status. For a store that does not support monitoring, such as the default
        in-memory store, it is always reported as available.
        """

    @abstractmethod
    def is_monitoring_enabled(self) -> bool:
        """
        True if the configured store reports its own availability, by defining
        ``is_monitoring_enabled()`` returning True together with ``is_available()``.
        """

    @abstractmethod
    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Calls ``listener`` with each new status. Nothing is ever delivered for a store without
        monitoring.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Stops calling ``listener``. Unknown listeners are ignored.
        """
