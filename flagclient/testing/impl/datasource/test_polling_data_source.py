import threading

import pytest
import urllib3

from flagclient.config import Config
from flagclient.data_store import InMemoryDataStore
from flagclient.impl.datasource.polling import PollingDataSource
from flagclient.impl.datasource.status import DataSourceUpdateSinkImpl
from flagclient.impl.listeners import Listeners
from flagclient.impl.task_runner import OrderedTaskRunner
from flagclient.impl.util import UnsuccessfulResponseException
from flagclient.interfaces import DataSourceErrorKind, DataSourceState
from flagclient.testing.builders import *
from flagclient.testing.stub_util import MockFeatureRequester
from flagclient.testing.sync_util import wait_until
from flagclient.versioned_data_kind import FEATURES, SEGMENTS

config = Config('SDK_KEY')


@pytest.fixture
def runner():
    runner = OrderedTaskRunner()
    yield runner
    runner.shutdown_now()


def setup_data_source(runner, requester):
    store = InMemoryDataStore()
    sink = DataSourceUpdateSinkImpl(store, Listeners(runner), Listeners(runner))
    source = PollingDataSource(config, sink, requester)
    return source, sink, store


def test_successful_request_puts_data_in_store_and_marks_valid(runner):
    flag = FlagBuilder('flagkey').version(1).build_dict()
    segment = SegmentBuilder('segkey').version(1).build().to_json_dict()
    requester = MockFeatureRequester()
    requester.all_data = {FEATURES: {'flagkey': flag}, SEGMENTS: {'segkey': segment}}

    source, sink, store = setup_data_source(runner, requester)
    try:
        ready = source.start()
        assert ready.result(5) is True
        assert source.initialized()
        assert store.initialized
        assert store.get(FEATURES, 'flagkey')['version'] == 1
        assert store.get(SEGMENTS, 'segkey')['version'] == 1
        wait_until(lambda: sink.status.state == DataSourceState.VALID)
    finally:
        source.close()


def test_close_turns_status_off(runner):
    requester = MockFeatureRequester()
    source, sink, _ = setup_data_source(runner, requester)
    source.start().result(5)
    source.close()
    assert sink.status.state == DataSourceState.OFF
    assert sink.status.error is None


@pytest.mark.parametrize('status', [401, 403, 404])
def test_unrecoverable_http_error_stops_data_source(runner, status):
    requester = MockFeatureRequester()
    requester.exception = UnsuccessfulResponseException(status)
    source, sink, _ = setup_data_source(runner, requester)

    ready = source.start()
    assert ready.result(5) is False
    assert not source.initialized()
    assert sink.status.state == DataSourceState.OFF
    assert sink.status.error.kind == DataSourceErrorKind.ERROR_RESPONSE
    assert sink.status.error.status_code == status


@pytest.mark.parametrize('status', [400, 408, 429, 500, 503])
def test_recoverable_http_error_interrupts_data_source(runner, status):
    requester = MockFeatureRequester()
    requester.exception = UnsuccessfulResponseException(status)
    source, sink, _ = setup_data_source(runner, requester)
    sink.update_status(DataSourceState.VALID, None)

    ready = source.start()
    try:
        wait_until(lambda: sink.status.error is not None)
        assert not ready.done()
        assert sink.status.state == DataSourceState.INTERRUPTED
        assert sink.status.error.kind == DataSourceErrorKind.ERROR_RESPONSE
        assert sink.status.error.status_code == status
    finally:
        source.close()
    assert ready.done()


def test_recoverable_error_while_initializing_keeps_initializing_state(runner):
    requester = MockFeatureRequester()
    requester.exception = UnsuccessfulResponseException(503)
    source, sink, _ = setup_data_source(runner, requester)

    source.start()
    try:
        wait_until(lambda: sink.status.error is not None)
        assert sink.status.state == DataSourceState.INITIALIZING
    finally:
        source.close()


def test_malformed_data_is_reported_as_invalid_data(runner):
    requester = MockFeatureRequester()
    requester.exception = ValueError("bad json")
    source, sink, _ = setup_data_source(runner, requester)
    sink.update_status(DataSourceState.VALID, None)

    source.start()
    try:
        wait_until(lambda: sink.status.error is not None)
        assert sink.status.state == DataSourceState.INTERRUPTED
        assert sink.status.error.kind == DataSourceErrorKind.INVALID_DATA
    finally:
        source.close()


def test_network_error_is_reported_as_network_error(runner):
    requester = MockFeatureRequester()
    requester.exception = urllib3.exceptions.ProtocolError("connection reset")
    source, sink, _ = setup_data_source(runner, requester)
    sink.update_status(DataSourceState.VALID, None)

    source.start()
    try:
        wait_until(lambda: sink.status.error is not None)
        assert sink.status.state == DataSourceState.INTERRUPTED
        assert sink.status.error.kind == DataSourceErrorKind.NETWORK_ERROR
    finally:
        source.close()


def test_unexpected_error_is_reported_as_unknown(runner):
    requester = MockFeatureRequester()
    requester.exception = RuntimeError("surprise")
    source, sink, _ = setup_data_source(runner, requester)
    sink.update_status(DataSourceState.VALID, None)

    source.start()
    try:
        wait_until(lambda: sink.status.error is not None)
        assert sink.status.error.kind == DataSourceErrorKind.UNKNOWN
    finally:
        source.close()


def test_store_failure_is_reported_as_store_error(runner):
    class FailingStore(InMemoryDataStore):
        def init(self, all_data):
            raise Exception("store down")

    requester = MockFeatureRequester()
    requester.all_data = {FEATURES: {}, SEGMENTS: {}}
    sink = DataSourceUpdateSinkImpl(FailingStore(), Listeners(runner), Listeners(runner))
    sink.update_status(DataSourceState.VALID, None)
    source = PollingDataSource(config, sink, requester)

    source.start()
    try:
        # the sink reports STORE_ERROR and re-raises; the poll then records it as UNKNOWN
        wait_until(lambda: sink.status.error is not None)
        assert sink.status.state == DataSourceState.INTERRUPTED
        assert not source.initialized()
    finally:
        source.close()
