from flagclient.impl.dependency_tracker import (DependencyTracker, KindAndKey,
                                                affected_flag_keys)
from flagclient.testing.builders import *
from flagclient.versioned_data_kind import FEATURES, SEGMENTS


def test_flag_depends_on_prerequisites_and_segments():
    flag = (
        FlagBuilder('flag')
        .prerequisite('prereq1', 0)
        .prerequisite('prereq2', 0)
        .rules(FlagRuleBuilder().variation(0).clauses(make_clause_matching_segment_key('seg1', 'seg2')).build())
        .build()
    )
    deps = DependencyTracker.compute_dependencies_from(FEATURES, flag)
    assert deps == {
        KindAndKey(FEATURES, 'prereq1'),
        KindAndKey(FEATURES, 'prereq2'),
        KindAndKey(SEGMENTS, 'seg1'),
        KindAndKey(SEGMENTS, 'seg2'),
    }


def test_segment_depends_on_segments_in_its_rules():
    segment = SegmentBuilder('seg').rules(SegmentRuleBuilder().clauses(make_clause_matching_segment_key('other')).build()).build()
    assert DependencyTracker.compute_dependencies_from(SEGMENTS, segment) == {KindAndKey(SEGMENTS, 'other')}


def test_raw_dict_and_deleted_items():
    assert DependencyTracker.compute_dependencies_from(FEATURES, {'key': 'f', 'version': 1, 'prerequisites': [{'key': 'p', 'variation': 0}]}) == {KindAndKey(FEATURES, 'p')}
    assert DependencyTracker.compute_dependencies_from(FEATURES, {'key': 'f', 'version': 2, 'deleted': True}) == set()
    assert DependencyTracker.compute_dependencies_from(FEATURES, None) == set()


def test_affected_flags_are_found_transitively():
    tracker = DependencyTracker()
    tracker.update_dependencies_from(FEATURES, 'top', FlagBuilder('top').prerequisite('middle', 0).build())
    tracker.update_dependencies_from(FEATURES, 'middle', FlagBuilder('middle').rules(FlagRuleBuilder().variation(0).clauses(make_clause_matching_segment_key('seg')).build()).build())
    tracker.update_dependencies_from(FEATURES, 'unrelated', FlagBuilder('unrelated').build())
    tracker.update_dependencies_from(SEGMENTS, 'seg', SegmentBuilder('seg').build())

    assert affected_flag_keys(tracker, SEGMENTS, 'seg') == {'middle', 'top'}
    assert affected_flag_keys(tracker, FEATURES, 'middle') == {'middle', 'top'}
    assert affected_flag_keys(tracker, FEATURES, 'unrelated') == {'unrelated'}


def test_updating_an_item_replaces_its_dependencies():
    tracker = DependencyTracker()
    tracker.update_dependencies_from(FEATURES, 'flag', FlagBuilder('flag').prerequisite('old', 0).build())
    tracker.update_dependencies_from(FEATURES, 'flag', FlagBuilder('flag').prerequisite('new', 0).build())

    assert affected_flag_keys(tracker, FEATURES, 'old') == {'old'}
    assert affected_flag_keys(tracker, FEATURES, 'new') == {'new', 'flag'}


def test_dependency_cycle_does_not_recurse_forever():
    tracker = DependencyTracker()
    tracker.update_dependencies_from(FEATURES, 'a', FlagBuilder('a').prerequisite('b', 0).build())
    tracker.update_dependencies_from(FEATURES, 'b', FlagBuilder('b').prerequisite('a', 0).build())
    assert affected_flag_keys(tracker, FEATURES, 'a') == {'a', 'b'}


def test_reset_forgets_everything():
    tracker = DependencyTracker()
    tracker.update_dependencies_from(FEATURES, 'flag', FlagBuilder('flag').prerequisite('prereq', 0).build())
    tracker.reset()
    assert affected_flag_keys(tracker, FEATURES, 'prereq') == {'prereq'}
