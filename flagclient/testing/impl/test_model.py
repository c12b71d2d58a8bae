import pytest

from flagclient.context import Context
from flagclient.impl.model import (Clause, FeatureFlag, MalformedDataError,
                                   Prerequisite, Segment, Target)
from flagclient.versioned_data_kind import FEATURES


def test_flag_reads_properties_with_defaults():
    flag = FeatureFlag({'key': 'f', 'version': 2})
    assert flag.key == 'f'
    assert flag.version == 2
    assert flag.on is False
    assert flag.variations == []
    assert flag.off_variation is None
    assert flag.fallthrough.variation is None
    assert flag.client_side is False


def test_client_side_availability_is_recognized():
    flag = FeatureFlag({'key': 'f', 'version': 1, 'clientSideAvailability': {'usingEnvironmentId': True}})
    assert flag.client_side is True


def test_missing_key_is_rejected():
    with pytest.raises(MalformedDataError) as e:
        FeatureFlag({'version': 1})
    assert e.value.property_name == 'key'


@pytest.mark.parametrize('data', [
    {'key': 'f', 'version': '1'},
    {'key': 'f', 'version': True},
    {'key': 'f', 'version': 1, 'offVariation': 'x'},
    {'key': 'f', 'version': 1, 'variations': 'abc'},
    {'key': 'f', 'version': 1, 'targets': [{'variation': 0, 'values': ['a', 1]}]},
    {'key': 'f', 'version': 1, 'debugEventsUntilDate': False},
])
def test_wrong_property_types_are_rejected(data):
    # malformed data is reported as a ValueError so the data source classes it as invalid data
    with pytest.raises(ValueError):
        FeatureFlag(data)


def test_deleted_item_needs_only_key_and_version():
    segment = Segment({'key': 's', 'version': 3, 'deleted': True})
    assert segment.deleted


def test_model_can_be_read_like_a_dict():
    data = {'key': 'f', 'version': 1, 'on': True}
    flag = FEATURES.decode(data)
    assert flag['on'] is True
    assert flag.get('missing', 'x') == 'x'
    assert 'version' in flag
    assert flag.to_json_dict() is data
    assert flag == FeatureFlag(dict(data))
    assert FEATURES.decode(flag) is flag


def test_deleted_flag_has_empty_configuration():
    flag = FeatureFlag({'key': 'f', 'version': 4, 'deleted': True, 'on': 'ignored'})
    assert flag.deleted
    assert flag.on is False
    assert flag.rules == []
    assert flag.matched_target(Context.create('anyone')) is None


def test_clause_attribute_defaults_to_key():
    clause = Clause({'op': 'in', 'values': ['a']})
    assert clause.attribute == 'key'
    assert clause.matches_attribute(Context.create('a'))


@pytest.mark.parametrize('negate,context,expected', [
    (False, Context.create('a'), True),
    (True, Context.create('a'), False),
    (True, Context.create('b'), True),
    (True, Context.create('a', 'org'), False),
    (True, Context.builder('a').set('tier', None).build(), False),
])
def test_clause_negation_applies_only_to_evaluated_matches(negate, context, expected):
    clause = Clause({'attribute': 'key', 'op': 'in', 'values': ['a'], 'negate': negate})
    assert clause.matches_attribute(context) is expected


def test_clause_missing_attribute_never_matches():
    clause = Clause({'attribute': 'tier', 'op': 'in', 'values': ['gold'], 'negate': True})
    assert clause.matches_attribute(Context.create('a')) is False


def test_clause_matches_any_element_of_list_attribute():
    clause = Clause({'attribute': 'tags', 'op': 'in', 'values': ['x', 2]})
    assert clause.matches_attribute(Context.builder('a').set('tags', ['y', 2]).build())
    assert not clause.matches_attribute(Context.builder('a').set('tags', [True]).build())


def test_segment_match_clause_is_not_an_attribute_match():
    clause = Clause({'op': 'segmentMatch', 'values': ['a']})
    assert clause.is_segment_match
    assert not clause.matches_attribute(Context.create('a'))


def test_segment_explicit_membership():
    segment = Segment({'key': 's', 'version': 1, 'included': ['in'], 'excluded': ['out', 'in']})
    assert segment.explicit_membership(Context.create('in')) is True
    assert segment.explicit_membership(Context.create('out')) is False
    assert segment.explicit_membership(Context.create('other')) is None
    assert segment.explicit_membership(Context.create('in', 'org')) is None


def test_target_matches_kind_and_key():
    target = Target({'contextKind': 'org', 'variation': 0, 'values': ['acme']})
    assert target.matches(Context.create('acme', 'org'))
    assert not target.matches(Context.create('acme'))


def test_prerequisite_requires_flag_on_and_variation():
    prereq = Prerequisite({'key': 'p', 'variation': 1})
    on_flag = FeatureFlag({'key': 'p', 'version': 1, 'on': True})
    off_flag = FeatureFlag({'key': 'p', 'version': 1, 'on': False})
    assert prereq.is_satisfied_by(on_flag, 1)
    assert not prereq.is_satisfied_by(on_flag, 0)
    assert not prereq.is_satisfied_by(off_flag, 1)
