"""
This submodule contains the client class that provides most of the functionality.
"""

import hashlib
import hmac
import traceback
from concurrent.futures import TimeoutError
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from flagclient.config import Config
from flagclient.context import Context
from flagclient.data_store import _DataSetSorter
from flagclient.evaluation import (ErrorKind, EvaluationDetail,
                                   FeatureFlagsState, error_reason)
from flagclient.impl import AnyNum
from flagclient.impl.datasource.polling import PollingDataSource
from flagclient.impl.datasource.status import (DataSourceStatusProviderImpl,
                                               DataSourceUpdateSinkImpl,
                                               OutageTracker)
from flagclient.impl.datastore.status import (DataStoreStatusProviderImpl,
                                              DataStoreUpdateSinkImpl)
from flagclient.impl.evaluator import Evaluator
from flagclient.impl.events.event_processor import DefaultEventProcessor
from flagclient.impl.events.types import EventFactory, EventInputEvaluation
from flagclient.impl.flag_tracker import FlagTrackerImpl
from flagclient.impl.listeners import Listeners
from flagclient.impl.model.feature_flag import FeatureFlag
from flagclient.impl.rwlock import ReadWriteLock
from flagclient.impl.stubs import NullDataSource, NullEventProcessor
from flagclient.impl.task_runner import OrderedTaskRunner, ScheduledTask
from flagclient.impl.util import log
from flagclient.interfaces import (DataSource, DataSourceState,
                                   DataSourceStatusProvider, DataSourceUpdateSink,
                                   DataStore, DataStoreStatus,
                                   DataStoreStatusProvider, DataStoreUpdateSink,
                                   EventProcessor, FlagTracker)
from flagclient.version import VERSION
from flagclient.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind

STORE_AVAILABILITY_POLL_INTERVAL = 0.5


class _DataStoreClientWrapper(DataStore):
    """Provides additional behavior that the client requires before or after data store operations:
    decoding and sorting the data set for init(), and detecting outages of a store that supports
    status monitoring.
    """

    def __init__(self, store: DataStore, store_update_sink: DataStoreUpdateSink, runner: OrderedTaskRunner):
        self.store = store
        self.__store_update_sink = store_update_sink
        self.__runner = runner
        self.__monitoring_enabled = self.is_monitoring_enabled()

        # Covers the following variables
        self.__lock = ReadWriteLock()
        self.__last_available = True
        self.__poller: Optional[ScheduledTask] = None

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, dict]]):
        sorted_data = _DataSetSorter.sort_all_collections(all_data)
        decoded = dict((kind, _decode_all(kind, items)) for kind, items in sorted_data.items())
        return self.__wrapper(lambda: self.store.init(decoded))

    def get(self, kind: VersionedDataKind, key: str) -> Any:
        return self.__wrapper(lambda: self.store.get(kind, key))

    def all(self, kind: VersionedDataKind) -> Mapping[str, Any]:
        return self.__wrapper(lambda: self.store.all(kind))

    def delete(self, kind: VersionedDataKind, key: str, version: int):
        return self.__wrapper(lambda: self.store.delete(kind, key, version))

    def upsert(self, kind: VersionedDataKind, item: dict):
        return self.__wrapper(lambda: self.store.upsert(kind, kind.decode(item)))

    @property
    def initialized(self) -> bool:
        return self.store.initialized

    def close(self):
        with self.__lock.write():
            if self.__poller is not None:
                self.__poller.cancel()
                self.__poller = None
        self.store.close()

    def __wrapper(self, fn: Callable):
        try:
            return fn()
        except Exception:
            if self.__monitoring_enabled:
                self.__update_availability(False)
            raise

    def __update_availability(self, available: bool):
        with self.__lock.write():
            if available == self.__last_available:
                return
            self.__last_available = available
            if available and self.__poller is not None:
                self.__poller.cancel()
                self.__poller = None

        if available:
            log.warning("Persistent store is available again")
            # Updates received during the outage may not have been written
            self.__store_update_sink.update_status(DataStoreStatus(True, True))
            return

        log.warning("Detected persistent store unavailability; updates will be cached until it recovers")
        self.__store_update_sink.update_status(DataStoreStatus(False, False))
        self.__schedule_availability_check()

    def __schedule_availability_check(self):
        with self.__lock.write():
            self.__poller = self.__runner.schedule(STORE_AVAILABILITY_POLL_INTERVAL, self.__check_availability)

    def __check_availability(self):
        try:
            if self.store.is_available():
                self.__update_availability(True)
                return
        except Exception as e:
            log.error("Unexpected error from data store status function: %s", e)
        with self.__lock.read():
            still_down = not self.__last_available and self.__poller is not None
        if still_down:
            self.__schedule_availability_check()

    def is_monitoring_enabled(self) -> bool:
        """
        The wrapped store supports monitoring only if it has an ``is_monitoring_enabled()`` method
        that returns True, and an ``is_available()`` method that tells us when it has recovered.
        """
        monitoring_enabled = getattr(self.store, 'is_monitoring_enabled', None)
        if not callable(monitoring_enabled) or not callable(getattr(self.store, 'is_available', None)):
            return False
        return monitoring_enabled()


def _decode_all(kind: VersionedDataKind, items: Mapping[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, item in items.items():
        out[key] = kind.decode(item)
    return out


def _get_store_item(store: DataStore, kind: VersionedDataKind, key: str) -> Any:
    # A custom store may hand back plain dicts instead of model objects.
    return kind.decode(store.get(kind, key))


def _type_category(value: Any) -> Any:
    if isinstance(value, bool):
        return bool
    if isinstance(value, (int, float)):
        return float
    if isinstance(value, (list, tuple)):
        return list
    return type(value)


class FlagClient:
    """The feature flag client object.

    Applications should configure the client at startup time and continue to use it throughout the
    lifetime of the application, rather than creating instances on the fly.

    Client instances are thread-safe. Evaluation always happens synchronously on the caller's
    thread; status and flag change listeners are called on a single worker thread owned by the
    client, one notification at a time.
    """

    def __init__(self, config: Config, start_wait: float = 5):
        """Constructs a new FlagClient instance.

        :param config: the client configuration
        :param start_wait: the number of seconds to wait for the data source to finish initializing;
          zero or less returns immediately
        """
        self._config = config
        self._config._validate()

        self.__close_lock = Lock()
        self.__closed = False

        self._event_factory_default = EventFactory(False)
        self._event_factory_with_reasons = EventFactory(True)

        self.__runner = OrderedTaskRunner()

        store_sink = DataStoreUpdateSinkImpl(Listeners(self.__runner))
        store = _DataStoreClientWrapper(self._config.data_store, store_sink, self.__runner)
        self._store = store  # type: DataStore
        self.__data_store_status_provider = DataStoreStatusProviderImpl(store, store_sink)

        self._evaluator = Evaluator(lambda key: _get_store_item(store, FEATURES, key), lambda key: _get_store_item(store, SEGMENTS, key))

        flag_change_listeners = Listeners(self.__runner)
        self.__flag_tracker = FlagTrackerImpl(flag_change_listeners, lambda key, context: self.variation(key, context, None))

        data_source_listeners = Listeners(self.__runner)
        outage_tracker = OutageTracker(self.__runner, self._config.log_data_source_outage_as_error_after)
        self.__data_source_update_sink = DataSourceUpdateSinkImpl(store, data_source_listeners, flag_change_listeners, outage_tracker)
        self.__data_source_status_provider = DataSourceStatusProviderImpl(data_source_listeners, self.__data_source_update_sink)

        if self._config.offline:
            log.info("Started FlagClient in offline mode")
        elif self._config.external_updates_only:
            log.info("Started FlagClient in external updates only mode")

        self._event_processor = self._make_event_processor(self._config)
        self._data_source = self._make_data_source(self._config, self.__data_source_update_sink)

        ready = self._data_source.start()

        if start_wait > 60:
            log.warning("Client was configured to block for up to %s seconds when initializing. We recommend blocking no longer than 60.", start_wait)

        if start_wait > 0:
            if not isinstance(self._data_source, NullDataSource):
                log.info("Waiting up to " + str(start_wait) + " seconds for FlagClient to initialize...")
            try:
                ready.result(start_wait)
            except TimeoutError:
                log.error("Timeout encountered waiting for FlagClient initialization")
            except Exception as e:
                log.error("Exception encountered waiting for FlagClient initialization: %s" % repr(e))
                log.debug(traceback.format_exc())

            if self._data_source.initialized():
                log.info("Started FlagClient: OK")
            else:
                log.warning("FlagClient was not successfully initialized. Feature flags may not yet be available.")

    def _make_event_processor(self, config: Config) -> EventProcessor:
        if config.offline or not config.send_events:
            return NullEventProcessor()
        if config.event_processor_class:
            return config.event_processor_class(config)
        return DefaultEventProcessor(config)

    def _make_data_source(self, config: Config, update_sink: DataSourceUpdateSink) -> DataSource:
        if config.data_source_class:
            log.info("Using user-specified data source: " + str(config.data_source_class))
            return config.data_source_class(config, update_sink)
        if config.offline or config.external_updates_only:
            return NullDataSource(config, update_sink)
        return PollingDataSource(config, update_sink)

    def get_sdk_key(self) -> Optional[str]:
        """Returns the configured SDK key."""
        return self._config.sdk_key

    def version(self) -> str:
        """Returns the version string of this client library."""
        return VERSION

    def close(self):
        """Releases all threads and network connections used by the client.

        The data store, the event processor (after delivering pending events) and the data source
        are closed in that order, the data source status becomes ``OFF``, and the worker thread that
        delivers notifications is stopped; notifications still queued at that point are discarded.
        Every step is attempted even if an earlier one fails; the first error is then re-raised.

        After closing, every evaluation returns the default value with a ``CLIENT_NOT_READY``
        error reason.
        """
        log.info("Closing FlagClient..")
        with self.__close_lock:
            self.__closed = True

        steps = [
            ("data store", self._store.close),
            ("event processor", self._event_processor.close),
            ("data source", self._data_source.close),
            ("data source status", lambda: self.__data_source_update_sink.update_status(DataSourceState.OFF, None)),
            ("task runner", self.__runner.shutdown_now),
        ]
        first_error = None  # type: Optional[Exception]
        for description, step in steps:
            try:
                step()
            except Exception as e:
                log.error("Unexpected error while closing %s: %s" % (description, repr(e)))
                log.debug(traceback.format_exc())
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    # These magic methods allow a client object to be automatically cleaned up by the "with" scope operator
    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()

    def _is_closed(self) -> bool:
        with self.__close_lock:
            return self.__closed

    def _send_event(self, event):
        self._event_processor.send_event(event)

    def track(self, event_name: str, context: Context, data: Optional[Any] = None, metric_value: Optional[AnyNum] = None):
        """Records a custom analytics event for ``context``.

        The event is queued, not sent; it goes out with the next batch (see :func:`flush()`).

        :param event_name: the event key
        :param context: the evaluation context the event is about
        :param data: any JSON-compatible value to attach
        :param metric_value: a number to attach for numeric metrics
        """
        if context is None:
            log.warning("Missing context for track; no event will be sent")
        elif not context.valid:
            log.warning("Invalid context for track (%s)", context.error)
        else:
            self._send_event(self._event_factory_default.new_custom_event(event_name, context, data, metric_value))

    def identify(self, context: Context):
        """Records an identify event for ``context``. Only needed to report a context that has not
        been used in an evaluation.
        """
        if context is None:
            log.warning("Missing context for identify; no event will be sent")
        elif not context.valid:
            log.warning("Invalid context for identify (%s)", context.error)
        else:
            self._send_event(self._event_factory_default.new_identify_event(context))

    def is_offline(self) -> bool:
        return self._config.offline

    def is_initialized(self) -> bool:
        """True once the data source has delivered flag data, until the client is closed.

        False can mean the client is still starting, is retrying after a failure, has given up
        (for example on an invalid SDK key), or was closed.
        """
        return not self._is_closed() and self._data_source.initialized()

    def flush(self):
        """Asks the event processor to deliver queued events now instead of at the next
        ``flush_interval``. Delivery still happens on a worker thread; this does not block.
        """
        if self._config.offline:
            return
        self._event_processor.flush()

    def variation(self, key: str, context: Context, default: Any) -> Any:
        """Evaluates flag ``key`` for ``context``.

        The flag's value is returned as is, whatever its type. ``default`` is returned if the flag
        cannot be evaluated for any reason; use :func:`variation_detail` to find out why.
        """
        detail, _ = self._evaluate_internal(key, context, default, self._event_factory_default, False)
        return detail.value

    def variation_detail(self, key: str, context: Context, default: Any) -> EvaluationDetail:
        """Like :func:`variation`, but returns an :class:`flagclient.evaluation.EvaluationDetail`
        with the variation index and the reason. The reason is also recorded in the analytics
        event.
        """
        detail, _ = self._evaluate_internal(key, context, default, self._event_factory_with_reasons, False)
        return detail

    def bool_variation(self, key: str, context: Context, default: bool) -> bool:
        """Calculates a boolean flag value. If the flag's value is not a boolean, ``default`` is
        returned with a ``WRONG_TYPE`` error.
        """
        return self.bool_variation_detail_internal(key, context, default, self._event_factory_default).value

    def bool_variation_detail(self, key: str, context: Context, default: bool) -> EvaluationDetail:
        return self.bool_variation_detail_internal(key, context, default, self._event_factory_with_reasons)

    def int_variation(self, key: str, context: Context, default: int) -> int:
        """Calculates a numeric flag value as an ``int``; a floating-point value is truncated."""
        return self._int_detail(key, context, default, self._event_factory_default).value

    def int_variation_detail(self, key: str, context: Context, default: int) -> EvaluationDetail:
        return self._int_detail(key, context, default, self._event_factory_with_reasons)

    def float_variation(self, key: str, context: Context, default: float) -> float:
        """Calculates a numeric flag value as a ``float``."""
        return self._float_detail(key, context, default, self._event_factory_default).value

    def float_variation_detail(self, key: str, context: Context, default: float) -> EvaluationDetail:
        return self._float_detail(key, context, default, self._event_factory_with_reasons)

    def string_variation(self, key: str, context: Context, default: str) -> str:
        return self._evaluate_internal(key, context, default, self._event_factory_default, True)[0].value

    def string_variation_detail(self, key: str, context: Context, default: str) -> EvaluationDetail:
        return self._evaluate_internal(key, context, default, self._event_factory_with_reasons, True)[0]

    def json_variation(self, key: str, context: Context, default: Any) -> Any:
        """Calculates a flag value of any JSON type (object, array, string, number, boolean or
        null). Unlike the other typed methods, this never reports ``WRONG_TYPE``.
        """
        return self.variation(key, context, default)

    def json_variation_detail(self, key: str, context: Context, default: Any) -> EvaluationDetail:
        return self.variation_detail(key, context, default)

    def bool_variation_detail_internal(self, key: str, context: Context, default: bool, event_factory: EventFactory) -> EvaluationDetail:
        return self._evaluate_internal(key, context, default, event_factory, True)[0]

    def _int_detail(self, key: str, context: Context, default: int, event_factory: EventFactory) -> EvaluationDetail:
        detail = self._evaluate_internal(key, context, default, event_factory, True)[0]
        if isinstance(detail.value, float):
            return EvaluationDetail(int(detail.value), detail.variation_index, detail.reason)
        return detail

    def _float_detail(self, key: str, context: Context, default: float, event_factory: EventFactory) -> EvaluationDetail:
        detail = self._evaluate_internal(key, context, default, event_factory, True)[0]
        if isinstance(detail.value, int) and not isinstance(detail.value, bool):
            return EvaluationDetail(float(detail.value), detail.variation_index, detail.reason)
        return detail

    def _fallback(self, key: str, flag: Optional[FeatureFlag], context: Optional[Context], default: Any, error_kind: ErrorKind, event_factory: EventFactory) -> Tuple[EvaluationDetail, EventInputEvaluation]:
        # the flag's metadata goes in the event if it was found, otherwise it is reported as unknown
        reason = error_reason(error_kind)
        if flag is None or error_kind == ErrorKind.WRONG_TYPE:
            event = event_factory.new_unknown_flag_event(key, context, default, reason)
        else:
            event = event_factory.new_default_event(flag, context, default, reason)
        return EvaluationDetail(default, None, reason), event

    def _record_events(self, events):
        for event in events:
            try:
                self._send_event(event)
            except Exception as e:
                log.error("Unable to record analytics event: %r", e)
                log.debug(traceback.format_exc())

    def _evaluate_internal(self, key: str, context: Optional[Context], default: Any, event_factory: EventFactory, check_type: bool) -> Tuple[EvaluationDetail, Optional[FeatureFlag]]:
        if not self.is_initialized():
            if not self._store_is_usable():
                log.warning("Flag evaluation attempted before client has initialized! Data store unavailable - returning default: %s for feature key: %s", default, key)
                detail, event = self._fallback(key, None, context, default, ErrorKind.CLIENT_NOT_READY, event_factory)
                self._record_events([event])
                return detail, None
            log.warning("Flag evaluation attempted before client has initialized - using last known values from data store for feature key: %s", key)

        flag = None  # type: Optional[FeatureFlag]
        prereq_events = []  # type: List[EventInputEvaluation]
        error_kind = None  # type: Optional[ErrorKind]
        try:
            flag = _get_store_item(self._store, FEATURES, key)
            if flag is None:
                log.info("Unknown feature flag \"%s\"; returning default value", key)
                error_kind = ErrorKind.FLAG_NOT_FOUND
            elif context is None or not context.valid:
                log.warning("Context was missing or invalid for flag evaluation (%s); returning default value", "None" if context is None else context.error)
                error_kind = ErrorKind.USER_NOT_SPECIFIED
            else:
                if context.key == '':
                    log.warning("Context key is blank. Flag evaluation will proceed, but the context will not be stored in the dashboard")

                result = self._evaluator.evaluate(flag, context, event_factory)
                prereq_events = result.events or []

                detail = result.detail
                if detail.is_default_value():
                    detail = EvaluationDetail(default, None, detail.reason)
                elif check_type and default is not None and detail.value is not None and _type_category(detail.value) != _type_category(default):
                    log.error("Feature flag \"%s\" evaluation expected result as %s, but got %s", key, type(default).__name__, type(detail.value).__name__)
                    error_kind = ErrorKind.WRONG_TYPE
                if error_kind is None:
                    event = event_factory.new_eval_event(flag, context, detail, default)
        except Exception as e:
            log.error("Unexpected error while evaluating feature flag \"%s\": %r", key, e)
            log.debug(traceback.format_exc())
            error_kind = ErrorKind.EXCEPTION

        if error_kind is not None:
            detail, event = self._fallback(key, flag, context, default, error_kind, event_factory)
        # exactly one primary event per call, even if the processor fails
        self._record_events(prereq_events + [event])
        return detail, flag

    def _store_is_usable(self) -> bool:
        return not self._is_closed() and self._store.initialized

    def is_flag_known(self, key: str) -> bool:
        """True if flag ``key`` exists. Before initialization this consults the data store only if
        it already holds data, as evaluation does; otherwise it returns False.
        """
        try:
            if not self.is_initialized():
                if not self._store_is_usable():
                    log.warning("is_flag_known called before client initialized for feature flag \"%s\"; data store unavailable, returning false", key)
                    return False
                log.warning("is_flag_known called before client initialized for feature flag \"%s\"; using last known values from data store", key)
            return _get_store_item(self._store, FEATURES, key) is not None
        except Exception as e:
            log.error("Encountered exception while calling is_flag_known for feature flag \"%s\": %r", key, e)
            log.debug(traceback.format_exc())
        return False

    def all_flags_state(self, context: Context, **kwargs) -> FeatureFlagsState:
        """Evaluates every flag for ``context`` and returns values plus the metadata a client-side
        SDK needs to bootstrap. No analytics events are recorded.

        :Keyword Arguments:
          * **client_side_only** (*boolean*) --
            include only flags made available to client-side SDKs
          * **with_reasons** (*boolean*) --
            record each flag's evaluation reason
          * **details_only_for_tracked_flags** (*boolean*) --
            leave out version and reason for flags that have neither event tracking nor debugging

        :return: never None; the state is marked invalid if there is no usable data or the context
          is missing or invalid
        """
        if not self.is_initialized():
            if not self._store_is_usable():
                log.warning("all_flags_state() called before client has finished initializing! Data store unavailable - returning empty state")
                return FeatureFlagsState(False)
            log.warning("all_flags_state() called before client has finished initializing! Using last known values from data store")

        if context is None or not context.valid:
            log.warning("Context was missing or invalid for all_flags_state (%s); returning empty state", "None" if context is None else context.error)
            return FeatureFlagsState(False)

        try:
            flags_map = self._store.all(FEATURES)
            if flags_map is None:
                raise ValueError("data store error")
        except Exception as e:
            log.error("Unable to read flags for all_flags_state: %r", e)
            return FeatureFlagsState(False)

        client_side_only = kwargs.get('client_side_only', False)
        with_reasons = kwargs.get('with_reasons', False)
        details_only_if_tracked = kwargs.get('details_only_for_tracked_flags', False)
        state = FeatureFlagsState(True)
        for item in flags_map.values():
            flag = FEATURES.decode(item)
            if not client_side_only or flag.client_side:
                state.add_flag(self._flag_state(flag, context), with_reasons, details_only_if_tracked)
        return state

    def _flag_state(self, flag: FeatureFlag, context: Context) -> dict:
        prerequisites = None
        try:
            result = self._evaluator.evaluate(flag, context, self._event_factory_default)
            detail = result.detail
            prerequisites = result.prerequisites
        except Exception as e:
            log.error("Error evaluating flag \"%s\" in all_flags_state: %r", flag.key, e)
            log.debug(traceback.format_exc())
            detail = EvaluationDetail(None, None, error_reason(ErrorKind.EXCEPTION))

        experiment = EventFactory.is_experiment(flag, detail.reason)
        return {
            'key': flag.key,
            'value': detail.value,
            'variation': detail.variation_index,
            'reason': detail.reason,
            'version': flag.version,
            'prerequisites': prerequisites,
            'trackEvents': flag.track_events or experiment,
            'trackReason': experiment,
            'debugEventsUntilDate': flag.debug_events_until_date,
        }

    def secure_mode_hash(self, context: Context) -> Optional[str]:
        """Creates a hash string that a client-side SDK can send to identify a context without
        exposing the raw key.

        :param context: the evaluation context
        :return: the lower-case hex HMAC-SHA256 of the context key, keyed with the SDK key; None if
          the context or its key is missing
        """
        if context is None or context.key is None:
            return None
        if not context.valid:
            log.warning("Context was invalid for secure_mode_hash (%s); returning None", context.error)
            return None
        return hmac.new(str(self._config.sdk_key).encode('utf-8'), context.key.encode('utf-8'), hashlib.sha256).hexdigest()

    @property
    def data_source_status_provider(self) -> DataSourceStatusProvider:
        """Status of the component that fetches flag data, with change listeners and
        :func:`flagclient.interfaces.DataSourceStatusProvider.wait_for`.
        """
        return self.__data_source_status_provider

    @property
    def data_store_status_provider(self) -> DataStoreStatusProvider:
        """Availability of the data store. Only a store that supports status monitoring ever
        reports an outage; the in-memory store is always available.
        """
        return self.__data_store_status_provider

    @property
    def flag_tracker(self) -> FlagTracker:
        """Subscriptions to flag configuration changes and to per-context value changes."""
        return self.__flag_tracker


__all__ = ['FlagClient', 'Config']
