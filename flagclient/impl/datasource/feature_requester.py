"""
HTTP requests for the full flag and segment data set.
"""

import json
from collections import namedtuple
from typing import Dict, Mapping

from flagclient.impl.http import _http_factory
from flagclient.impl.util import _headers, log, throw_if_unsuccessful_response
from flagclient.versioned_data_kind import FEATURES, SEGMENTS, VersionedDataKind

CacheEntry = namedtuple('CacheEntry', ['data', 'etag'])


class FeatureRequester:
    """
    Fetches the latest data set with a conditional GET, reusing the previous payload when the
    service answers 304 Not Modified.
    """

    def __init__(self, config):
        factory = _http_factory(config)
        self._http = factory.create_pool_manager(1, config.base_uri)
        self._timeout = factory.timeout
        self._config = config
        self._poll_uri = config.latest_features_uri
        self._cache: Dict[str, CacheEntry] = {}

    def get_all_data(self) -> Mapping[VersionedDataKind, Mapping[str, dict]]:
        uri = self._poll_uri
        hdrs = _headers(self._config)
        hdrs['Accept-Encoding'] = 'gzip'
        cache_entry = self._cache.get(uri)
        if cache_entry is not None:
            hdrs['If-None-Match'] = cache_entry.etag

        r = self._http.request('GET', uri, headers=hdrs, timeout=self._timeout, retries=1)
        throw_if_unsuccessful_response(r)

        if r.status == 304 and cache_entry is not None:
            data = cache_entry.data
            from_cache = True
        else:
            data = json.loads(r.data.decode('UTF-8'))
            from_cache = False
            etag = r.headers.get('ETag')
            if etag is not None:
                self._cache[uri] = CacheEntry(data=data, etag=etag)
        log.debug("%s response status:[%d] From cache? [%s]", uri, r.status, from_cache)

        return {FEATURES: data.get('flags', {}), SEGMENTS: data.get('segments', {})}

    def close(self):
        self._http.clear()
