import pytest

from flagclient.config import Config
from flagclient.impl.datasource.feature_requester import FeatureRequester
from flagclient.impl.util import UnsuccessfulResponseException
from flagclient.testing.stub_util import JsonResponse, MockHttp, MockResponse
from flagclient.version import VERSION
from flagclient.versioned_data_kind import FEATURES, SEGMENTS


def make_requester(http):
    config = Config(sdk_key='sdk-key', base_uri='http://flags.example')
    fr = FeatureRequester(config)
    fr._http = http
    return fr


def test_get_all_data_returns_data():
    http = MockHttp()
    flags = {'flag1': {'key': 'flag1'}}
    segments = {'segment1': {'key': 'segment1'}}
    http.set_response_func(lambda: JsonResponse({'flags': flags, 'segments': segments}))

    result = make_requester(http).get_all_data()
    assert result == {FEATURES: flags, SEGMENTS: segments}


def test_get_all_data_sends_headers():
    http = MockHttp()
    http.set_response_func(lambda: JsonResponse({'flags': {}, 'segments': {}}))

    make_requester(http).get_all_data()
    method, uri, headers, _ = http.recorded_requests[0]
    assert method == 'GET'
    assert uri == 'http://flags.example/sdk/latest-all'
    assert headers['Authorization'] == 'sdk-key'
    assert headers['User-Agent'] == 'FlagClientPython/' + VERSION
    assert headers['Accept-Encoding'] == 'gzip'
    assert headers.get('If-None-Match') is None


def test_get_all_data_can_use_cached_data():
    http = MockHttp()
    fr = make_requester(http)

    etag1 = 'my-etag-1'
    etag2 = 'my-etag-2'
    resp_data1 = {'flags': {'flag1': {'key': 'flag1'}}, 'segments': {}}
    resp_data2 = {'flags': {'flag2': {'key': 'flag2'}}, 'segments': {}}
    expected_data1 = {FEATURES: {'flag1': {'key': 'flag1'}}, SEGMENTS: {}}
    expected_data2 = {FEATURES: {'flag2': {'key': 'flag2'}}, SEGMENTS: {}}

    http.set_response_func(lambda: JsonResponse(resp_data1, headers={'Etag': etag1}))
    assert fr.get_all_data() == expected_data1
    assert http.request_headers.get('If-None-Match') is None

    http.set_response_func(lambda: MockResponse(304, {}))
    assert fr.get_all_data() == expected_data1
    assert http.request_headers.get('If-None-Match') == etag1

    http.set_response_func(lambda: JsonResponse(resp_data2, headers={'Etag': etag2}))
    assert fr.get_all_data() == expected_data2
    assert http.request_headers.get('If-None-Match') == etag1

    http.set_response_func(lambda: MockResponse(304, {}))
    assert fr.get_all_data() == expected_data2
    assert http.request_headers.get('If-None-Match') == etag2


def test_get_all_data_raises_for_error_status():
    http = MockHttp()
    http.set_response_status(503)

    with pytest.raises(UnsuccessfulResponseException) as e:
        make_requester(http).get_all_data()
    assert e.value.status == 503


def test_get_all_data_raises_for_malformed_body():
    http = MockHttp()
    http.set_response_func(lambda: MockResponse(200, {}, b'{not json'))

    with pytest.raises(ValueError):
        make_requester(http).get_all_data()
