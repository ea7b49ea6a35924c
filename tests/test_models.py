"""Tests for the data models."""

import pytest

from workspace_risk_auditor.errors import DecodeError, ValidationError
from workspace_risk_auditor.models import (
    ID_SEPARATOR,
    AssetFilters,
    AssetId,
    AssetSort,
    AssetType,
    RiskLevel,
    SortField,
    SortOrder,
    SourceKind,
    risk_level_for,
)


@pytest.mark.parametrize("kind", list(SourceKind))
@pytest.mark.parametrize("local_id", ["1", "482", "abc_def", "a_b_c"])
def test_asset_id_round_trip(kind, local_id):
    asset_id = AssetId(kind, local_id)
    assert AssetId.decode(asset_id.encode()) == asset_id


def test_asset_id_encoding():
    assert AssetId(SourceKind.DRIVE, "482").encode() == "drive_482"
    assert str(AssetId(SourceKind.SENDER, "9")) == "sender_9"


def test_source_kinds_never_contain_separator():
    for kind in SourceKind:
        assert ID_SEPARATOR not in kind.value


def test_decode_splits_on_first_separator_only():
    decoded = AssetId.decode("message_17_b")
    assert decoded.source_kind is SourceKind.MESSAGE
    assert decoded.local_id == "17_b"


@pytest.mark.parametrize("token", ["", "drive", "drive_", "_12", "sheet_3", "DRIVE_1", None, 42])
def test_decode_rejects_malformed(token):
    with pytest.raises(DecodeError, match="malformed"):
        AssetId.decode(token)


@pytest.mark.parametrize(
    "score,level",
    [(0, RiskLevel.LOW), (30, RiskLevel.LOW), (31, RiskLevel.MEDIUM), (60, RiskLevel.MEDIUM),
     (61, RiskLevel.HIGH), (100, RiskLevel.HIGH)],
)
def test_risk_level_boundaries(score, level):
    assert risk_level_for(score) is level


def test_filters_parse():
    filters = AssetFilters.parse(types=["drive_file"], risk_levels=["high", "medium"], search="x")
    assert filters.types == {AssetType.DRIVE_FILE}
    assert filters.risk_levels == {RiskLevel.HIGH, RiskLevel.MEDIUM}
    assert filters.search == "x"
    assert filters.is_public is None


def test_filters_parse_rejects_unknown_names():
    with pytest.raises(ValidationError, match="asset type"):
        AssetFilters.parse(types=["spreadsheet"])
    with pytest.raises(ValidationError, match="risk level"):
        AssetFilters.parse(risk_levels=["critical"])


def test_sort_parse():
    assert AssetSort() == AssetSort(SortField.RISK_SCORE, SortOrder.DESC)
    assert AssetSort.parse("name", "ASC") == AssetSort(SortField.NAME, SortOrder.ASC)
    with pytest.raises(ValidationError):
        AssetSort.parse("size")
    with pytest.raises(ValidationError):
        AssetSort.parse("name", "sideways")
