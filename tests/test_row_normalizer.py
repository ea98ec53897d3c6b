"""Tests for row normalization."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from parking_scanner.row_normalizer import (
    DEFAULT_PARKING_ATTRIBUTES,
    DEFAULT_SPACE_ATTRIBUTES,
    UNKNOWN,
    ColumnRule,
    MalformedCoordinateError,
    choice_field,
    flag_field,
    float_field,
    header_cells,
    int_field,
    normalize_row,
    normalize_rows,
    parse_location,
    price_field,
    text_field,
)

HEADER = ["名称", "ID", "住所", "緯度経度", "種別", "台数", "料金", "24時間", "高さ制限", "車種"]


def make_cells(**overrides):
    cells = {
        "A": "タイムズ梅田",
        "B": 1001,
        "C": "大阪府大阪市北区梅田1-1",
        "D": "34.7025, 135.4959",
        "E": "平面",
        "F": "20台",
        "G": "300円/30分",
        "H": "○",
        "I": "2.1m",
        "J": "普通車",
    }
    cells.update(overrides)
    return [cells[c] for c in "ABCDEFGHIJ"]


class TestParseLocation:
    def test_lat_lng_with_space(self):
        assert parse_location("34.7025, 135.4959") == (34.7025, 135.4959)

    @pytest.mark.parametrize("value", [None, "", "34.7", "north,east", "1,2,3"])
    def test_malformed(self, value):
        with pytest.raises(MalformedCoordinateError):
            parse_location(value)


class TestTransforms:
    def test_text_strips(self):
        assert text_field("name")("  abc ") == {"name": "abc"}
        assert text_field("name")(None) == {"name": ""}

    def test_int_with_unit(self):
        assert int_field("capacity")("1,200台") == {"capacity": 1200}
        assert int_field("capacity")(15.0) == {"capacity": 15}
        assert int_field("capacity")(None) == {"capacity": 0}

    def test_int_garbage_raises(self):
        with pytest.raises(ValueError):
            int_field("capacity")("多数")

    def test_float_with_unit(self):
        t = float_field("max_height_m")
        assert t("2.1m") == {"max_height_m": 2.1}
        assert t(1.55) == {"max_height_m": 1.55}
        assert t("") == {"max_height_m": 0.0}

    def test_float_garbage_raises(self):
        with pytest.raises(ValueError):
            float_field("max_height_m")("制限なし")

    def test_flag(self):
        assert flag_field("open_24h")("○") == {"open_24h": 1}
        assert flag_field("open_24h")("×") == {"open_24h": 0}
        assert flag_field("open_24h")(True) == {"open_24h": 1}

    def test_choice_unknown_label(self):
        transform = choice_field("parking_type", {"平面": "flat"})
        assert transform("平面駐車場") == {"parking_type": "flat"}
        assert transform("屋上") == {"parking_type": UNKNOWN}
        assert transform(None) == {"parking_type": UNKNOWN}

    def test_price(self):
        assert price_field("300円/30分") == {"price_yen": 300, "price_minutes": 30}
        assert price_field("¥1,500 / 24時間") == {"price_yen": 1500, "price_minutes": 1440}
        assert price_field("無料") == {"price_yen": 0, "price_minutes": 0}
        assert price_field(400) == {"price_yen": 400, "price_minutes": 0}

    def test_price_garbage_raises(self):
        with pytest.raises(ValueError):
            price_field("要問合せ")


class TestNormalizeRow:
    def test_full_row(self):
        obs = normalize_row(2, make_cells())
        assert obs.row_index == 2
        assert obs.source_id == "1001"
        assert obs.coord == (34.7025, 135.4959)
        assert obs.attributes["name"] == "タイムズ梅田"
        assert obs.attributes["address"] == "大阪府大阪市北区梅田1-1"
        assert obs.attributes["parking_type"] == "flat"
        assert obs.space_attributes["capacity"] == 20
        assert obs.space_attributes["price_yen"] == 300
        assert obs.space_attributes["open_24h"] == 1
        assert obs.space_attributes["max_height_m"] == 2.1
        assert obs.space_attributes["car_type"] == "standard"

    def test_baseline_defaults_present(self):
        obs = normalize_row(2, make_cells())
        assert obs.attributes["source"] == "p-king"
        assert obs.attributes["status"] == 1

    def test_bad_attribute_cell_falls_back_to_default(self):
        obs = normalize_row(2, make_cells(F="多数", G="要問合せ"))
        assert obs.space_attributes["capacity"] == DEFAULT_SPACE_ATTRIBUTES["capacity"]
        assert obs.space_attributes["price_yen"] == DEFAULT_SPACE_ATTRIBUTES["price_yen"]
        assert obs.attributes["name"] == "タイムズ梅田"

    def test_rule_default_used_on_failure(self):
        rules = [ColumnRule("F", int_field("capacity"), section="space", default={"capacity": -1})]
        obs = normalize_row(2, make_cells(F="多数"), rules=rules)
        assert obs.space_attributes["capacity"] == -1

    def test_short_row_uses_defaults(self):
        obs = normalize_row(2, [None, 7, None, "34.0,135.0"])
        assert obs.source_id == "7"
        assert obs.attributes["parking_type"] == UNKNOWN
        assert obs.space_attributes["capacity"] == 0

    def test_defaults_are_not_mutated(self):
        before_parking = dict(DEFAULT_PARKING_ATTRIBUTES)
        before_space = dict(DEFAULT_SPACE_ATTRIBUTES)
        normalize_row(2, make_cells())
        normalize_row(3, make_cells(A="別の駐車場"))
        assert dict(DEFAULT_PARKING_ATTRIBUTES) == before_parking
        assert dict(DEFAULT_SPACE_ATTRIBUTES) == before_space

    def test_float_source_id(self):
        assert normalize_row(2, make_cells(B=1001.0)).source_id == "1001"

    def test_missing_location_raises(self):
        with pytest.raises(MalformedCoordinateError):
            normalize_row(2, make_cells(D=None))


class TestNormalizeRows:
    def test_header_skipped_by_index(self):
        # Header row carries a parsable location on purpose
        header = make_cells(A="名称", B="ID")
        rows = [(1, header), (2, make_cells(B=1)), (3, make_cells(B=2))]
        observations = normalize_rows(rows)
        assert [o.row_index for o in observations] == [2, 3]

    def test_bad_rows_skipped(self):
        rows = [(1, HEADER), (2, make_cells(D="")), (3, make_cells(D="abc")), (4, make_cells())]
        observations = normalize_rows(rows)
        assert [o.row_index for o in observations] == [4]

    def test_header_cells(self):
        rows = [(1, HEADER), (2, make_cells())]
        assert header_cells(rows) == HEADER
        assert header_cells([]) is None
