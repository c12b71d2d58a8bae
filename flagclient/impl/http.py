from os import environ
from typing import Optional

import certifi
import urllib3

from flagclient.version import VERSION


def _base_headers(config) -> dict:
    return {'Authorization': config.sdk_key or '', 'User-Agent': 'FlagClientPython/' + VERSION}


def _http_factory(config) -> 'HTTPFactory':
    return HTTPFactory(_base_headers(config), config.http)


class HTTPFactory:
    """
    Builds urllib3 pool managers that share the client's timeout, proxy and TLS settings.
    """

    def __init__(self, base_headers, http_config):
        self.__base_headers = base_headers
        self.__http_config = http_config
        self.__timeout = urllib3.Timeout(connect=http_config.connect_timeout, read=http_config.read_timeout)

    @property
    def base_headers(self) -> dict:
        return self.__base_headers

    @property
    def timeout(self) -> urllib3.Timeout:
        return self.__timeout

    def create_pool_manager(self, num_pools: int, target_base_uri: str):
        proxy_url = self.__http_config.http_proxy or _get_proxy_url(target_base_uri)

        if self.__http_config.disable_ssl_verification:
            cert_reqs = 'CERT_NONE'
            ca_certs = None
        else:
            cert_reqs = 'CERT_REQUIRED'
            ca_certs = self.__http_config.ca_certs or certifi.where()

        if proxy_url is None:
            return urllib3.PoolManager(num_pools=num_pools, cert_reqs=cert_reqs, ca_certs=ca_certs)

        url = urllib3.util.parse_url(proxy_url)
        proxy_headers = None
        if url.auth is not None:
            proxy_headers = urllib3.util.make_headers(proxy_basic_auth=url.auth)
        return urllib3.ProxyManager(proxy_url, num_pools=num_pools, cert_reqs=cert_reqs, ca_certs=ca_certs, proxy_headers=proxy_headers)


def _get_proxy_url(target_base_uri: Optional[str]) -> Optional[str]:
    # Only the scheme-specific variable is honored; no_proxy matching is left to the caller's HTTPConfig.
    if target_base_uri is None:
        return None
    if target_base_uri.startswith('https'):
        return environ.get('https_proxy')
    return environ.get('http_proxy')
