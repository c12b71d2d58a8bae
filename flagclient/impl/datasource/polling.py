"""
Default data source: periodically polls the flag delivery service for the full data set.
"""

import time
from concurrent.futures import Future
from typing import Optional

import urllib3

from flagclient.impl.datasource.feature_requester import FeatureRequester
from flagclient.impl.repeating_task import RepeatingTask
from flagclient.impl.util import (UnsuccessfulResponseException,
                                  http_error_message, is_http_error_recoverable,
                                  log)
from flagclient.interfaces import (DataSource, DataSourceErrorInfo,
                                   DataSourceErrorKind, DataSourceState,
                                   DataSourceUpdateSink)


class PollingDataSource(DataSource):
    def __init__(self, config, update_sink: DataSourceUpdateSink, requester: Optional[FeatureRequester] = None):
        self._config = config
        self._update_sink = update_sink
        self._requester = FeatureRequester(config) if requester is None else requester
        self._ready: Future = Future()
        self._initialized = False
        self._task = RepeatingTask("flagclient.datasource.polling", config.poll_interval, 0, self._poll)

    def start(self) -> Future:
        log.info("Starting PollingDataSource with request interval: %s", self._config.poll_interval)
        self._task.start()
        return self._ready

    def initialized(self) -> bool:
        return self._initialized

    def close(self):
        self.__stop_with_error_info(None)

    def __stop_with_error_info(self, error: Optional[DataSourceErrorInfo]):
        log.info("Stopping PollingDataSource")
        self._task.stop()
        self.__complete_start()
        self._update_sink.update_status(DataSourceState.OFF, error)

    def __complete_start(self):
        # Also wakes up a client that is still waiting on start() after a permanent failure.
        if not self._ready.done():
            self._ready.set_result(self._initialized)

    def _poll(self):
        try:
            all_data = self._requester.get_all_data()
            self._update_sink.init(all_data)
            if not self._initialized:
                log.info("PollingDataSource initialized ok")
                self._initialized = True
                self.__complete_start()
            self._update_sink.update_status(DataSourceState.VALID, None)
        except UnsuccessfulResponseException as e:
            error_info = DataSourceErrorInfo(DataSourceErrorKind.ERROR_RESPONSE, e.status, time.time(), str(e))
            message = http_error_message(e.status, "polling request")
            if not is_http_error_recoverable(e.status):
                log.error(message)
                self.__stop_with_error_info(error_info)
            else:
                log.warning(message)
                self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info)
        except ValueError as e:
            log.error("Received invalid data in polling response: %s" % e)
            self._update_sink.update_status(DataSourceState.INTERRUPTED, DataSourceErrorInfo(DataSourceErrorKind.INVALID_DATA, 0, time.time(), str(e)))
        except urllib3.exceptions.HTTPError as e:
            log.warning("Network error in polling request: %s" % e)
            self._update_sink.update_status(DataSourceState.INTERRUPTED, DataSourceErrorInfo(DataSourceErrorKind.NETWORK_ERROR, 0, time.time(), str(e)))
        except Exception as e:
            log.exception('Error: Exception encountered when updating flags. %s' % e)
            self._update_sink.update_status(DataSourceState.INTERRUPTED, DataSourceErrorInfo(DataSourceErrorKind.UNKNOWN, 0, time.time(), str(e)))
