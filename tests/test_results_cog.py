import pytest

from prizedesk.cogs.results import format_amount, parse_field_value, parse_position_table
from prizedesk.utils.exceptions import ValidationError


def test_parse_position_table():
    assert parse_position_table("1:60, 2:30%,3:10") == {1: 60.0, 2: 30.0, 3: 10.0}
    assert parse_position_table("") == {}


@pytest.mark.parametrize("raw", ["1-60", "first:60", "1:lots"])
def test_parse_position_table_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        parse_position_table(raw)


def test_parse_field_value():
    assert parse_field_value('kills', "7") == 7
    assert parse_field_value('position', "none") is None
    assert parse_field_value('verification_notes', "checked twice") == "checked twice"

    with pytest.raises(ValidationError):
        parse_field_value('kills', "seven")


def test_format_amount_drops_trailing_zeros():
    assert format_amount(1500).endswith("1,500")
    assert format_amount(10.5).endswith("10.5")
