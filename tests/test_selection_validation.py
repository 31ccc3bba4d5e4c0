from tablepos.engine.errors import SelectionErrorKind
from tablepos.engine.modifiers import resolve_effective_groups
from tablepos.engine.selections import validate_selections
from tests.fixtures_data import ALL_GROUPS, BURGER, BURGER_ASSIGNMENTS, SIZE_GROUP, TOPPINGS_GROUP


def _groups():
    return resolve_effective_groups(BURGER, BURGER_ASSIGNMENTS, ALL_GROUPS)


def _kinds(errors):
    return [error.kind for error in errors]


def test_valid_selection_is_accepted():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [102], TOPPINGS_GROUP.id: [201, 202]})

    assert result.ok
    assert result.selections == {SIZE_GROUP.id: (102,), TOPPINGS_GROUP.id: (201, 202)}
    assert result.warnings == []


def test_three_toppings_exceed_maximum_of_two():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [101], TOPPINGS_GROUP.id: [201, 202, 203]})

    assert not result.ok
    assert _kinds(result.errors) == [SelectionErrorKind.TOO_MANY_CHOICES]
    assert result.errors[0].group_id == TOPPINGS_GROUP.id


def test_single_choice_group_rejects_two_options():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [101, 102]})

    assert _kinds(result.errors) == [SelectionErrorKind.TOO_MANY_CHOICES]


def test_required_group_left_empty_is_rejected():
    result = validate_selections(_groups(), {TOPPINGS_GROUP.id: [201]})

    assert _kinds(result.errors) == [SelectionErrorKind.REQUIRED_CHOICES_MISSING]
    assert result.errors[0].group_id == SIZE_GROUP.id


def test_missing_selections_only_fail_required_groups():
    result = validate_selections(_groups(), None)

    assert _kinds(result.errors) == [SelectionErrorKind.REQUIRED_CHOICES_MISSING]


def test_option_from_another_group_is_unknown():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [201]})

    kinds = _kinds(result.errors)
    assert SelectionErrorKind.UNKNOWN_OPTION in kinds
    unknown = next(error for error in result.errors if error.kind == SelectionErrorKind.UNKNOWN_OPTION)
    assert unknown.option_id == 201
    assert unknown.to_dict()["group_id"] == SIZE_GROUP.id


def test_duplicate_option_ids_count_once():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [102, 102], TOPPINGS_GROUP.id: [201, 201, 202]})

    assert result.ok
    assert result.selections[TOPPINGS_GROUP.id] == (201, 202)


def test_unassigned_group_is_a_warning_and_ignored():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [101], 999: [1]})

    assert result.ok
    assert _kinds(result.warnings) == [SelectionErrorKind.UNASSIGNED_GROUP]
    assert 999 not in result.selections


def test_every_violated_group_is_reported():
    result = validate_selections(_groups(), {SIZE_GROUP.id: [101, 102], TOPPINGS_GROUP.id: [201, 202, 203]})

    assert {error.group_id for error in result.errors} == {SIZE_GROUP.id, TOPPINGS_GROUP.id}
