import pytest
from sqlalchemy import Float, Integer, String

from sqlrest.core.rest.params import ParameterTable, infer_value


@pytest.mark.parametrize(
    "value, expected",
    [
        ("12", (12, "integer")),
        ("-3", (-3, "integer")),
        ("1.5", (1.5, "float")),
        ("2.0", (2, "integer")),
        (7, (7, "integer")),
        (2.5, (2.5, "float")),
        (True, (1, "integer")),
        ("abc", ("abc", "string")),
        ("1e5", ("1e5", "string")),
        ("007a", ("007a", "string")),
        (None, (None, "string")),
        ("9223372036854775807", (9223372036854775807, "integer")),
        ("-9223372036854775808", (-9223372036854775808, "integer")),
        ("99999999999999999999", ("99999999999999999999", "string")),
        (1e19, (1e19, "float")),
    ],
)
def test_infer_value(value, expected):
    assert infer_value(value) == expected


def test_placeholders_are_sequential():
    params = ParameterTable()

    assert params.bind("Ann") == ":param1"
    assert params.bind(3) == ":param2"
    assert params.bind(None) == ":param3"
    assert len(params) == 3
    assert list(params) == ["param1", "param2", "param3"]


def test_lookup_accepts_placeholder_or_name():
    params = ParameterTable()
    placeholder = params.bind("4.25")

    assert params[placeholder].value == 4.25
    assert params["param1"].wire_type == "float"


def test_bindparams_carry_wire_types():
    params = ParameterTable()
    params.bind("x")
    params.bind("1")
    params.bind("0.5")

    bound = params.bindparams()

    assert [b.key for b in bound] == ["param1", "param2", "param3"]
    assert isinstance(bound[0].type, String)
    assert isinstance(bound[1].type, Integer)
    assert isinstance(bound[2].type, Float)
    assert [b.value for b in bound] == ["x", 1, 0.5]
