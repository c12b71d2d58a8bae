"""
Implementation details of the analytics event delivery component.
"""

import json
import queue
import time
import uuid
from collections import namedtuple
from threading import Event, Lock, Thread
from typing import Any, Dict, List, Optional, Tuple

import urllib3

from flagclient.context import Context
from flagclient.impl.events.types import (EventInput, EventInputCustom,
                                          EventInputEvaluation,
                                          EventInputIdentify)
from flagclient.impl.http import _http_factory
from flagclient.impl.repeating_task import RepeatingTask
from flagclient.impl.util import (_headers,
                                  check_if_error_is_recoverable_and_log,
                                  current_time_millis, is_http_error_recoverable,
                                  log)
from flagclient.interfaces import EventProcessor

CURRENT_EVENT_SCHEMA = 4


EventProcessorMessage = namedtuple('EventProcessorMessage', ['type', 'param'])

FlushPayload = namedtuple('FlushPayload', ['events', 'summary'])


class SummaryCounter:
    __slots__ = ['count', 'value']

    def __init__(self, count: int, value: Any):
        self.count = count
        self.value = value


class FlagSummary:
    __slots__ = ['default', 'context_kinds', 'counters']

    def __init__(self, default: Any):
        self.default = default
        self.context_kinds = set()  # type: set
        self.counters = {}  # type: Dict[Tuple[Optional[int], Optional[int]], SummaryCounter]


class EventSummary:
    """
    Evaluation counts per flag, variation and version, for the evaluations that were not sent as
    full events.
    """

    def __init__(self):
        self.start_date = 0
        self.end_date = 0
        self.flags = {}  # type: Dict[str, FlagSummary]

    def is_empty(self) -> bool:
        return len(self.flags) == 0

    def add(self, event: EventInputEvaluation):
        flag_summary = self.flags.get(event.key)
        if flag_summary is None:
            flag_summary = FlagSummary(event.default_value)
            self.flags[event.key] = flag_summary
        if event.context is not None:
            flag_summary.context_kinds.add(event.context.kind)
        counter_key = (event.variation, event.version)
        counter = flag_summary.counters.get(counter_key)
        if counter is None:
            flag_summary.counters[counter_key] = SummaryCounter(1, event.value)
        else:
            counter.count += 1
        if self.start_date == 0 or event.timestamp < self.start_date:
            self.start_date = event.timestamp
        if event.timestamp > self.end_date:
            self.end_date = event.timestamp


class EventOutputFormatter:
    def make_output_events(self, events: List[EventInput], summary: EventSummary) -> List[dict]:
        events_out = [self.make_output_event(e) for e in events]
        if not summary.is_empty():
            events_out.append(self.make_summary_event(summary))
        return events_out

    def make_output_event(self, e: EventInput) -> Optional[dict]:
        if isinstance(e, EventInputEvaluation):
            out = {'kind': 'feature', 'creationDate': e.timestamp, 'key': e.key, 'value': e.value, 'default': e.default_value, 'context': _context_dict(e.context)}
            if e.flag is not None:
                out['version'] = e.flag.version
            if e.variation is not None:
                out['variation'] = e.variation
            if e.reason is not None:
                out['reason'] = e.reason
            if e.prereq_of is not None:
                out['prereqOf'] = e.prereq_of.key
            return out
        if isinstance(e, EventInputIdentify):
            return {'kind': 'identify', 'creationDate': e.timestamp, 'context': _context_dict(e.context)}
        if isinstance(e, EventInputCustom):
            out = {'kind': 'custom', 'creationDate': e.timestamp, 'key': e.key, 'contextKeys': {e.context.kind: e.context.key}}
            if e.data is not None:
                out['data'] = e.data
            if e.metric_value is not None:
                out['metricValue'] = e.metric_value
            return out
        return None

    def make_summary_event(self, summary: EventSummary) -> dict:
        flags_out = {}  # type: Dict[str, Any]
        for key, flag_data in summary.flags.items():
            counters = []  # type: List[Dict[str, Any]]
            for (variation, version), counter in flag_data.counters.items():
                counter_out = {'count': counter.count, 'value': counter.value}  # type: Dict[str, Any]
                if variation is not None:
                    counter_out['variation'] = variation
                if version is None:
                    counter_out['unknown'] = True
                else:
                    counter_out['version'] = version
                counters.append(counter_out)
            flags_out[key] = {'default': flag_data.default, 'contextKinds': sorted(flag_data.context_kinds), 'counters': counters}
        return {'kind': 'summary', 'startDate': summary.start_date, 'endDate': summary.end_date, 'features': flags_out}


def _context_dict(context: Optional[Context]) -> Optional[dict]:
    return None if context is None else context.to_dict()


class EventBuffer:
    def __init__(self, capacity: int):
        self._capacity = capacity
        self._events = []  # type: List[EventInput]
        self._summary = EventSummary()
        self._exceeded_capacity = False

    def add_event(self, event: EventInput):
        if len(self._events) >= self._capacity:
            if not self._exceeded_capacity:
                log.warning("Exceeded event queue capacity. Increase capacity to avoid dropping events.")
                self._exceeded_capacity = True
        else:
            self._events.append(event)
            self._exceeded_capacity = False

    def add_to_summary(self, event: EventInputEvaluation):
        self._summary.add(event)

    def get_payload(self) -> FlushPayload:
        return FlushPayload(self._events, self._summary)

    def clear(self):
        self._events = []
        self._summary = EventSummary()


class EventDispatcher:
    """
    Owns the event buffer. All buffer access happens on one daemon thread that reads messages from
    the inbox, so the buffer needs no locking. Payloads are delivered on the same thread.
    """

    def __init__(self, inbox: queue.Queue, config, http_client=None):
        self._inbox = inbox
        self._config = config
        self._http = _http_factory(config).create_pool_manager(1, config.events_uri) if http_client is None else http_client
        self._close_http = http_client is None
        self._disabled = False
        self._outbox = EventBuffer(config.events_max_pending)
        self._formatter = EventOutputFormatter()

        self._main_thread = Thread(target=self._run_main_loop, name="flagclient.events.processor")
        self._main_thread.daemon = True
        self._main_thread.start()

    def _run_main_loop(self):
        log.info("Starting event processor")
        while True:
            try:
                message = self._inbox.get(block=True)
                if message.type == 'event':
                    self._process_event(message.param)
                elif message.type == 'flush':
                    self._trigger_flush()
                elif message.type == 'test_sync':
                    message.param.set()
                elif message.type == 'stop':
                    self._do_shutdown()
                    message.param.set()
                    return
            except Exception:
                log.error('Unhandled exception in event processor', exc_info=True)

    def _process_event(self, event: EventInput):
        if self._disabled:
            return
        # Nothing can be reported for an evaluation that had no usable context.
        if event.context is None or not event.context.valid:
            return
        if isinstance(event, EventInputEvaluation):
            self._outbox.add_to_summary(event)
            if event.track_events or self._should_debug_event(event):
                self._outbox.add_event(event)
        else:
            self._outbox.add_event(event)

    @staticmethod
    def _should_debug_event(event: EventInputEvaluation) -> bool:
        if event.flag is None:
            return False
        debug_until = event.flag.debug_events_until_date
        return debug_until is not None and debug_until > current_time_millis()

    def _trigger_flush(self):
        if self._disabled:
            return
        payload = self._outbox.get_payload()
        if len(payload.events) == 0 and payload.summary.is_empty():
            return
        self._outbox.clear()
        try:
            output_events = self._formatter.make_output_events(payload.events, payload.summary)
            self._do_send(output_events)
        except Exception:
            log.warning('Unhandled exception in event processor. Analytics events were not processed.', exc_info=True)

    def _do_send(self, output_events: List[dict]):
        json_body = json.dumps(output_events, separators=(',', ':'))
        log.debug('Sending events payload: ' + json_body)
        r = _post_events_with_retry(self._http, self._config, self._config.events_base_uri, str(uuid.uuid4()), json_body, "%d events" % len(output_events))
        if r is not None and r.status > 299 and not is_http_error_recoverable(r.status):
            self._disabled = True

    def _do_shutdown(self):
        if self._close_http:
            self._http.clear()


class DefaultEventProcessor(EventProcessor):
    def __init__(self, config, http=None):
        self._inbox = queue.Queue(config.events_max_pending)
        self._inbox_full = False
        self._flush_timer = RepeatingTask("flagclient.events.flush", config.flush_interval, config.flush_interval, self.flush)
        self._flush_timer.start()

        self._close_lock = Lock()
        self._closed = False

        EventDispatcher(self._inbox, config, http)

    def send_event(self, event: EventInput):
        self._post_to_inbox(EventProcessorMessage('event', event))

    def flush(self):
        self._post_to_inbox(EventProcessorMessage('flush', None))

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._flush_timer.stop()
        self.flush()
        # Blocking put: an orderly shutdown needs the stop message even if the inbox is full.
        self._post_message_and_wait('stop')

    def _post_to_inbox(self, message: EventProcessorMessage):
        try:
            self._inbox.put(message, block=False)
        except queue.Full:
            if not self._inbox_full:
                self._inbox_full = True
                log.warning("Events are being produced faster than they can be processed; some events will be dropped")

    # Used only in tests
    def _wait_until_inactive(self):
        self._post_message_and_wait('test_sync')

    def _post_message_and_wait(self, type: str):
        reply = Event()
        self._inbox.put(EventProcessorMessage(type, reply))
        reply.wait()

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()


def _post_events_with_retry(http_client, config, uri: str, payload_id: str, body: str, events_description: str):
    hdrs = _headers(config)
    hdrs['X-FlagClient-Event-Schema'] = str(CURRENT_EVENT_SCHEMA)
    hdrs['X-FlagClient-Payload-ID'] = payload_id
    can_retry = True
    context = "posting %s" % events_description
    while True:
        next_action_message = "will retry" if can_retry else "some events were dropped"
        try:
            r = http_client.request('POST', uri, headers=hdrs, body=body, timeout=urllib3.Timeout(connect=config.http.connect_timeout, read=config.http.read_timeout), retries=0)
            if r.status < 300:
                return r
            if not check_if_error_is_recoverable_and_log(context, r.status, None, next_action_message):
                return r
        except Exception as e:
            check_if_error_is_recoverable_and_log(context, None, str(e), next_action_message)
        if not can_retry:
            return None
        can_retry = False
        # one retry, after a fixed one-second delay
        time.sleep(1)
