import dataclasses
import json
from fractions import Fraction

import pytest

from complogs.config import (
    BINARY_SI,
    DECIMAL_SI,
    JSON_LOG_FORMAT,
    FormatOptions,
    JSONOptions,
    LoggingConfiguration,
    Quantity,
    TextOptions,
    TimeOrMetaDuration,
    VModuleItem,
    format_duration,
    parse_duration,
)

ALL_FIELDS = """{
	"format": "json",
	"flushFrequency": 1,
	"verbosity": 5,
	"vmodule": [
		{"filePattern": "someFile", "verbosity": 10},
		{"filePattern": "anotherFile", "verbosity": 1}
	],
	"options": {
		"text": {
			"splitStream": true,
			"infoBufferSize": "2048"
		},
		"json": {
			"splitStream": true,
			"infoBufferSize": "1024"
		}
	}
}
"""


@pytest.mark.parametrize(
    "arg, wanted",
    [("1s", '"1s"'), (1000000000, "1000000000")],
)
def test_time_or_meta_duration_round_trip(arg, wanted):
    parsed = TimeOrMetaDuration.from_json(json.dumps(arg).encode())
    assert parsed.to_json() == wanted


def test_time_or_meta_duration_invalid():
    with pytest.raises(ValueError) as info:
        TimeOrMetaDuration.from_json(json.dumps("invalid"))
    assert str(info.value) == 'time: invalid duration "invalid"'


def test_time_or_meta_duration_rejects_float():
    with pytest.raises(ValueError, match="invalid duration"):
        TimeOrMetaDuration.from_json("1.5")


def test_time_or_meta_duration_string_flag():
    assert TimeOrMetaDuration.from_json('"5s"') == TimeOrMetaDuration(5_000_000_000, True)
    assert TimeOrMetaDuration.from_json("7") == TimeOrMetaDuration(7, False)


def test_compatibility_all_fields():
    config = LoggingConfiguration.from_dict(json.loads(ALL_FIELDS))
    expected = LoggingConfiguration(
        format=JSON_LOG_FORMAT,
        flush_frequency=TimeOrMetaDuration(1),
        verbosity=5,
        vmodule=[VModuleItem("someFile", 10), VModuleItem("anotherFile", 1)],
        options=FormatOptions(
            text=TextOptions(True, Quantity(2048, DECIMAL_SI)),
            json=JSONOptions(True, Quantity(1024, DECIMAL_SI)),
        ),
    )
    assert config == expected
    empty = LoggingConfiguration()
    for f in dataclasses.fields(LoggingConfiguration):
        assert getattr(config, f.name) != getattr(empty, f.name), f.name


def test_compatibility_defaults():
    assert LoggingConfiguration.from_dict({}) == LoggingConfiguration()


def test_unknown_field_is_rejected():
    with pytest.raises(ValueError, match='unknown field "options.text.foo"'):
        LoggingConfiguration.from_dict({"options": {"text": {"foo": 1}}})
    with pytest.raises(ValueError, match='unknown field "bogus"'):
        LoggingConfiguration.from_dict({"bogus": True})


def test_wrong_types_are_rejected():
    with pytest.raises(ValueError):
        LoggingConfiguration.from_dict({"verbosity": -1})
    with pytest.raises(ValueError):
        LoggingConfiguration.from_dict({"format": 3})


def test_dict_round_trip():
    config = LoggingConfiguration.from_dict(json.loads(ALL_FIELDS))
    config.flush_frequency = TimeOrMetaDuration(1_500_000_000, True)
    config.options.text.info_buffer_size = Quantity.parse("2Ki")
    again = LoggingConfiguration.from_dict(json.loads(json.dumps(config.to_dict())))
    assert again == config


def test_to_dict_omits_empty_fields():
    data = LoggingConfiguration().to_dict()
    assert "format" not in data
    assert "vmodule" not in data
    assert data["options"]["text"] == {"infoBufferSize": "0"}


def test_deep_copy_is_independent():
    config = LoggingConfiguration.from_dict(json.loads(ALL_FIELDS))
    clone = config.deep_copy()
    clone.vmodule[0].verbosity = 99
    clone.options.json.split_stream = False
    assert config.vmodule[0].verbosity == 10
    assert config.options.json.split_stream is True


@pytest.mark.parametrize(
    "text, value, fmt",
    [
        ("512", 512, DECIMAL_SI),
        ("1k", 1000, DECIMAL_SI),
        ("2Ki", 2048, BINARY_SI),
        ("5Mi", 5 * 1024 * 1024, BINARY_SI),
        ("3M", 3_000_000, DECIMAL_SI),
    ],
)
def test_quantity_parse(text, value, fmt):
    quantity = Quantity.parse(text)
    assert quantity.value() == value
    assert quantity.format == fmt
    assert str(quantity) == text


def test_quantity_rounds_up():
    quantity = Quantity.parse("1500m")
    assert quantity.amount == Fraction(3, 2)
    assert quantity.value() == 2
    assert str(quantity) == "1500m"


def test_quantity_string_round_trip():
    for text in ("0", "1", "999", "1100", "1Gi", "250m", "-3k"):
        quantity = Quantity.parse(text)
        assert Quantity.parse(str(quantity)) == quantity


@pytest.mark.parametrize("text", ["", "abc", "1K", ".", "1x"])
def test_quantity_invalid(text):
    with pytest.raises(ValueError):
        Quantity.parse(text)


def test_format_duration_values():
    assert format_duration(5_000_000_000) == "5s"
    assert format_duration(1_000) == "1\u00b5s"
    assert format_duration(0) == "0s"


@pytest.mark.parametrize(
    "nanos", [1, 999, 1_500, 2_000_000, 1_000_000_000, 3_600_000_000_000, 90_061_500_000_000, -42]
)
def test_duration_round_trip(nanos):
    assert parse_duration(format_duration(nanos)) == nanos


def test_parse_duration_errors():
    with pytest.raises(ValueError) as info:
        parse_duration("1")
    assert str(info.value) == 'time: missing unit in duration "1"'
    with pytest.raises(ValueError) as info:
        parse_duration("1x")
    assert str(info.value) == 'time: unknown unit "x" in duration "1x"'
    with pytest.raises(ValueError):
        parse_duration("")
    with pytest.raises(ValueError):
        parse_duration(".s")


def test_parse_duration_compound():
    assert parse_duration("1h30m") == parse_duration("90m")
    assert parse_duration("1.5s") == parse_duration("1500ms")
    assert parse_duration("0") == 0