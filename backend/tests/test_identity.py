from deliverytracker.sync.identity import find_by_id, has_id, index_of_id


def test_lookup_tolerates_type_and_field_variants():
    records = [{"deliveryId": "x"}, {"id": 42}, {"delivery_id": "7"}]

    assert index_of_id(records, "42") == 1
    assert index_of_id(records, 42) == 1
    assert find_by_id(records, 7) == {"delivery_id": "7"}
    assert find_by_id(records, "x") == {"deliveryId": "x"}


def test_missing_or_empty_targets_never_match():
    records = [{"id": ""}, {"name": "no id"}]

    assert index_of_id(records, "") == -1
    assert index_of_id(records, None) == -1
    assert find_by_id(records, "missing") is None
    assert not has_id({"id": None}, "None")


def test_first_match_wins():
    records = [{"id": "1", "tag": "a"}, {"customerId": 1, "tag": "b"}]
    assert find_by_id(records, 1)["tag"] == "a"
