import logging
import time

from flagclient.impl.http import _base_headers

log = logging.getLogger('flagclient.util')

# 4xx statuses that can clear up on their own; every other 4xx means the request will never succeed
_RECOVERABLE_CLIENT_ERRORS = frozenset([400, 408, 429])


def current_time_millis() -> int:
    return int(time.time() * 1000)


def _headers(config) -> dict:
    headers = _base_headers(config)
    headers['Content-Type'] = 'application/json'
    return headers


class UnsuccessfulResponseException(Exception):
    """Raised for an HTTP response with an error status."""

    def __init__(self, status: int):
        super().__init__("HTTP error %d" % status)
        self._status = status

    @property
    def status(self) -> int:
        return self._status


def throw_if_unsuccessful_response(resp):
    if resp.status >= 400:
        raise UnsuccessfulResponseException(resp.status)


def is_http_error_recoverable(status: int) -> bool:
    if 400 <= status < 500:
        return status in _RECOVERABLE_CLIENT_ERRORS
    return True


def http_error_description(status: int) -> str:
    if status in (401, 403):
        return "HTTP error %d (invalid SDK key)" % status
    return "HTTP error %d" % status


def http_error_message(status: int, context: str, retryable_message: str = "will retry") -> str:
    outcome = retryable_message if is_http_error_recoverable(status) else "giving up permanently"
    return "Received %s for %s - %s" % (http_error_description(status), context, outcome)


def check_if_error_is_recoverable_and_log(error_context: str, status_code, error_desc, recoverable_message: str) -> bool:
    """
    Logs a failed request and returns True if it is worth trying again. Pass either an HTTP status
    or, for an I/O error, a description with a status of None.
    """
    if status_code and error_desc is None:
        error_desc = http_error_description(status_code)
    if status_code and not is_http_error_recoverable(status_code):
        log.error("Error %s (giving up permanently): %s", error_context, error_desc)
        return False
    log.warning("Error %s (%s): %s", error_context, recoverable_message, error_desc)
    return True
