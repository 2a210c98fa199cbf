import json
from pathlib import Path

import pytest

from avsig import InvalidPolicy
from avsig.loader import load_policies, load_snapshot, read_document
from avsig.policy import FunctionFilterMode, TrimAlgorithm
from avsig.regions import MatchSnapshot, RegionKind


SNAPSHOT = {
    "items": {
        "a": [
            {"kind": "common", "data": "8bff558bec", "function_address": 16, "weight": 3},
            {"kind": "variable", "data": "11223344", "min_length": 4, "max_length": 6},
        ],
        "b": [
            {"kind": "common", "data": "8bff558bec", "function_address": 16},
            {"kind": "variable", "data": "9988776655", "stable_nibbles": [0, 1]},
        ],
    },
    "similarity": {"a": {"b": 0.5, "c": 0.25}},
}


def test_load_json_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT), "utf-8")
    snapshot = load_snapshot(path)
    regions = snapshot.regions_for("a")
    assert regions is not None
    assert regions.regions[0].data == bytes.fromhex("8bff558bec")
    assert regions.regions[0].weight == 3
    assert regions.regions[1].kind is RegionKind.VARIABLE
    assert regions.regions[1].length_range() == (4, 6)
    assert snapshot.regions_for("b").regions[1].stable_nibbles == frozenset({0, 1})
    assert list(snapshot.similar_to("a")) == [("b", 0.5), ("c", 0.25)]
    assert MatchSnapshot.from_dict(snapshot.to_dict()) == snapshot


def test_load_yaml_policies(tmp_path: Path) -> None:
    path = tmp_path / "policies.yaml"
    path.write_text(
        "policies:\n"
        "  - detection_name: First\n"
        "    item_ids: [a, b]\n"
        "    trim_length: 32\n"
        "    trim_algorithm: trim_weighted\n"
        "    meta:\n"
        "      author: analyst\n"
        "      revision: 2\n"
        "  - detection_name: Second\n"
        "    item_ids: [a]\n"
        "    function_filter: FILTER_BLACKLIST\n"
        "    filtered_function_addresses: [16]\n",
        "utf-8",
    )
    first, second = load_policies(path)
    assert first.item_ids == ("a", "b")
    assert first.trim_algorithm is TrimAlgorithm.TRIM_WEIGHTED
    assert [(entry.key, entry.value) for entry in first.meta] == [("author", "analyst"), ("revision", 2)]
    assert second.function_filter is FunctionFilterMode.FILTER_BLACKLIST
    assert second.filtered_function_addresses == (16,)


def test_load_single_json_policy_by_number(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"5": "Numbered", "6": ["a"], "8": 5}), "utf-8")
    (policy,) = load_policies(path)
    assert policy.detection_name == "Numbered"
    assert policy.trim_algorithm is TrimAlgorithm.TRIM_WEIGHTED


def test_load_policy_list(tmp_path: Path) -> None:
    path = tmp_path / "policies.yml"
    path.write_text("- item_ids: [a]\n- item_ids: [b]\n", "utf-8")
    assert [policy.item_ids for policy in load_policies(path)] == [("a",), ("b",)]


def test_scalar_policy_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("42", "utf-8")
    with pytest.raises(InvalidPolicy):
        load_policies(path)


def test_snapshot_must_be_a_mapping(tmp_path: Path) -> None:
    path = tmp_path / "snapshot.yaml"
    path.write_text("- a\n- b\n", "utf-8")
    assert read_document(path) == ["a", "b"]
    with pytest.raises(ValueError):
        load_snapshot(path)
