"""
This submodule contains the :class:`Config` class for custom configuration of the client.

Note that the same class can also be imported from the ``flagclient.client`` submodule.
"""

from typing import Callable, Optional

from flagclient.data_store import InMemoryDataStore
from flagclient.impl.util import log
from flagclient.interfaces import (DataSource, DataSourceUpdateSink, DataStore,
                                   EventProcessor)

GET_LATEST_FEATURES_PATH = '/sdk/latest-all'


class HTTPConfig:
    """Advanced HTTP configuration options for the client.

    Connection settings shared by every HTTP request the client makes. The defaults suit most
    deployments; pass an instance as ``Config(http=...)`` to change them.
    """

    def __init__(
        self,
        connect_timeout: float = 10,
        read_timeout: float = 15,
        http_proxy: Optional[str] = None,
        ca_certs: Optional[str] = None,
        disable_ssl_verification: bool = False,
    ):
        """
        :param connect_timeout: Seconds to wait for a connection to be established.
        :param read_timeout: Seconds to wait for data on an open connection.
        :param http_proxy: The full URI of a proxy to use for every connection the client makes, for
          example http://my-proxy.com:1234. This overrides the ``http_proxy``/``https_proxy``
          environment variables.
        :param ca_certs: Path of a certificate bundle to trust instead of the default; use this for a
          private certificate authority. By default the ``certifi`` bundle is used.
        :param disable_ssl_verification: If true, completely disables certificate verification for
          secure requests. Do not use this in production; set ``ca_certs`` instead.
        """
        self.__connect_timeout = connect_timeout
        self.__read_timeout = read_timeout
        self.__http_proxy = http_proxy
        self.__ca_certs = ca_certs
        self.__disable_ssl_verification = disable_ssl_verification

    @property
    def connect_timeout(self) -> float:
        return self.__connect_timeout

    @property
    def read_timeout(self) -> float:
        return self.__read_timeout

    @property
    def http_proxy(self) -> Optional[str]:
        return self.__http_proxy

    @property
    def ca_certs(self) -> Optional[str]:
        return self.__ca_certs

    @property
    def disable_ssl_verification(self) -> bool:
        return self.__disable_ssl_verification


class Config:
    """Advanced configuration options for the client.

    To use these options, create an instance of ``Config`` and pass it to the
    :class:`flagclient.client.FlagClient` constructor.
    """

    def __init__(
        self,
        sdk_key: str,
        base_uri: str = 'https://sdk.flagclient.io',
        events_uri: str = 'https://events.flagclient.io',
        events_max_pending: int = 10000,
        flush_interval: float = 5,
        send_events: Optional[bool] = None,
        poll_interval: float = 30,
        offline: bool = False,
        external_updates_only: bool = False,
        data_store: Optional[DataStore] = None,
        data_source_class: Optional[Callable[['Config', DataSourceUpdateSink], DataSource]] = None,
        event_processor_class: Optional[Callable[['Config'], EventProcessor]] = None,
        log_data_source_outage_as_error_after: Optional[float] = 60,
        http: HTTPConfig = HTTPConfig(),
    ):
        """
        :param sdk_key: The SDK key for your environment. This is always required.
        :param base_uri: The base URL of the flag delivery service. Most users should use the
          default value.
        :param events_uri: The URL of the analytics events service. Most users should use the
          default value.
        :param events_max_pending: How many events may wait in memory for the next flush. Events
          arriving while the buffer is full are dropped; a warning is logged once per overflow.
        :param flush_interval: The number of seconds in between flushes of the events buffer.
        :param send_events: Whether or not to send analytics events. This differs from ``offline`` in
          that it does not affect fetching flag data. By default, events will be sent.
        :param poll_interval: The number of seconds between polls for flag updates. Values below 30 are
          raised to 30.
        :param offline: If true, the client never connects to the flag service or sends events;
          flags are evaluated against whatever the data store holds (normally nothing, so
          defaults are returned).
        :param external_updates_only: If true, the client never connects to the flag delivery service
          and relies on some other process to populate a shared ``data_store``. Analytics events are
          still sent.
        :param data_store: A :class:`flagclient.interfaces.DataStore` implementation. Defaults to an
          :class:`flagclient.data_store.InMemoryDataStore`.
        :param data_source_class: A factory for a :class:`flagclient.interfaces.DataSource`, taking the
          config and the :class:`flagclient.interfaces.DataSourceUpdateSink` it must write to.
        :param event_processor_class: A factory for an :class:`flagclient.interfaces.EventProcessor`
          taking the config.
        :param log_data_source_outage_as_error_after: If the data source stays interrupted for this
          many seconds, one error summarizing the outage is logged. ``None`` or zero disables this.
        :param http: Connection settings; see
          :class:`HTTPConfig`.
        """
        self.__sdk_key = sdk_key

        self.__base_uri = base_uri.rstrip('/')
        self.__events_uri = events_uri.rstrip('/')
        self.__events_max_pending = events_max_pending
        self.__flush_interval = flush_interval
        if offline is True:
            send_events = False
        self.__send_events = True if send_events is None else send_events
        self.__poll_interval = max(poll_interval, 30.0)
        self.__offline = offline
        self.__external_updates_only = external_updates_only
        self.__data_store = InMemoryDataStore() if not data_store else data_store
        self.__data_source_class = data_source_class
        self.__event_processor_class = event_processor_class
        self.__log_data_source_outage_as_error_after = log_data_source_outage_as_error_after
        self.__http = http

    @property
    def sdk_key(self) -> Optional[str]:
        return self.__sdk_key

    @property
    def base_uri(self) -> str:
        return self.__base_uri

    @property
    def latest_features_uri(self) -> str:
        return self.__base_uri + GET_LATEST_FEATURES_PATH

    @property
    def events_uri(self) -> str:
        return self.__events_uri

    @property
    def events_base_uri(self) -> str:
        return self.__events_uri + '/bulk'

    @property
    def events_max_pending(self) -> int:
        return self.__events_max_pending

    @property
    def flush_interval(self) -> float:
        return self.__flush_interval

    @property
    def send_events(self) -> bool:
        return self.__send_events

    @property
    def poll_interval(self) -> float:
        return self.__poll_interval

    @property
    def offline(self) -> bool:
        return self.__offline

    @property
    def external_updates_only(self) -> bool:
        return self.__external_updates_only

    @property
    def data_store(self) -> DataStore:
        return self.__data_store

    @property
    def data_source_class(self) -> Optional[Callable[['Config', DataSourceUpdateSink], DataSource]]:
        return self.__data_source_class

    @property
    def event_processor_class(self) -> Optional[Callable[['Config'], EventProcessor]]:
        return self.__event_processor_class

    @property
    def log_data_source_outage_as_error_after(self) -> Optional[float]:
        return self.__log_data_source_outage_as_error_after

    @property
    def http(self) -> HTTPConfig:
        return self.__http

    def _validate(self):
        if self.offline is False and (self.sdk_key is None or self.sdk_key == ''):
            log.warning("Missing or blank sdk_key.")


__all__ = ['Config', 'HTTPConfig']
