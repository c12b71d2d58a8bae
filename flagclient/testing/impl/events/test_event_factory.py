from flagclient.context import Context
from flagclient.evaluation import ErrorKind, EvaluationDetail, error_reason
from flagclient.impl.events.types import EventFactory
from flagclient.testing.builders import *

_event_factory_default = EventFactory(False)
_event_factory_with_reasons = EventFactory(True)
_context = Context.create('x')


def test_fallthrough_with_no_track_events_in_fallthrough():
    flag = FlagBuilder('key').version(100).on(True).variations('a', 'b').fallthrough_variation(0).build()
    detail = EvaluationDetail('a', 0, {'kind': 'FALLTHROUGH'})

    eval = _event_factory_default.new_eval_event(flag, _context, detail, 'b', None)
    assert eval.track_events is False
    assert eval.reason is None

    eval = _event_factory_with_reasons.new_eval_event(flag, _context, detail, 'b', None)
    assert eval.track_events is False
    assert eval.reason == {'kind': 'FALLTHROUGH'}


def test_fallthrough_with_track_events_in_fallthrough():
    flag = FlagBuilder('key').version(100).on(True).variations('a', 'b').fallthrough_variation(0).track_events_fallthrough(True).build()
    detail = EvaluationDetail('a', 0, {'kind': 'FALLTHROUGH'})

    eval = _event_factory_default.new_eval_event(flag, _context, detail, 'b', None)
    assert eval.track_events is True
    assert eval.reason == {'kind': 'FALLTHROUGH'}


def test_rule_with_no_track_events():
    rule = FlagRuleBuilder().id('id').variation(0).build()
    flag = FlagBuilder('key').version(100).on(True).variations('a', 'b').rules(rule).build()
    detail = EvaluationDetail('a', 0, {'kind': 'RULE_MATCH', 'ruleIndex': 0, 'ruleId': 'id'})

    eval = _event_factory_default.new_eval_event(flag, _context, detail, 'b', None)
    assert eval.track_events is False
    assert eval.reason is None


def test_rule_with_track_events():
    rule = FlagRuleBuilder().id('id').variation(0).track_events(True).build()
    flag = FlagBuilder('key').version(100).on(True).variations('a', 'b').rules(rule).build()
    detail = EvaluationDetail('a', 0, {'kind': 'RULE_MATCH', 'ruleIndex': 0, 'ruleId': 'id'})

    eval = _event_factory_default.new_eval_event(flag, _context, detail, 'b', None)
    assert eval.track_events is True
    assert eval.reason == detail.reason


def test_rule_index_out_of_range_is_not_an_experiment():
    flag = FlagBuilder('key').version(100).on(True).variations('a', 'b').build()
    assert not EventFactory.is_experiment(flag, {'kind': 'RULE_MATCH', 'ruleIndex': 5})
    assert not EventFactory.is_experiment(flag, None)


def test_flag_track_events_is_copied_to_eval_event():
    flag = FlagBuilder('key').version(1).track_events(True).build()
    eval = _event_factory_default.new_eval_event(flag, _context, EvaluationDetail('a', 0, {'kind': 'OFF'}), None, None)
    assert eval.track_events is True


def test_default_event_keeps_flag_and_uses_default_value():
    flag = FlagBuilder('key').version(7).track_events(True).build()
    reason = error_reason(ErrorKind.WRONG_TYPE)

    e = _event_factory_with_reasons.new_default_event(flag, _context, 'dflt', reason)
    assert e.key == 'key'
    assert e.error_kind == 'WRONG_TYPE'
    assert e.version == 7
    assert e.value == 'dflt'
    assert e.default_value == 'dflt'
    assert e.variation is None
    assert e.reason == reason
    assert e.track_events is True

    assert _event_factory_default.new_default_event(flag, _context, 'dflt', reason).reason is None


def test_unknown_flag_event():
    reason = error_reason(ErrorKind.FLAG_NOT_FOUND)
    e = _event_factory_with_reasons.new_unknown_flag_event('nope', _context, 'dflt', reason)
    assert e.flag is None
    assert e.version is None
    assert e.value == 'dflt'
    assert e.reason == reason
    assert e.track_events is False


def test_timestamp_function_is_used():
    factory = EventFactory(False, lambda: 12345)
    assert factory.new_identify_event(_context).timestamp == 12345
    custom = factory.new_custom_event('event', _context, {'a': 1}, 2)
    assert custom.timestamp == 12345
    assert custom.key == 'event'
    assert custom.data == {'a': 1}
    assert custom.metric_value == 2


def test_error_kind_is_only_known_when_reasons_are_recorded():
    reason = error_reason(ErrorKind.FLAG_NOT_FOUND)
    assert _event_factory_with_reasons.new_unknown_flag_event('nope', _context, None, reason).error_kind == 'FLAG_NOT_FOUND'
    assert _event_factory_default.new_unknown_flag_event('nope', _context, None, reason).error_kind is None
