"""Configuration API for logging.

Only a single version of this API exists; new fields are added in a
backwards-compatible way. Alpha and beta options stay disabled as long as
their defaults are left unchanged.
"""

from __future__ import annotations

import copy
import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Union

DEFAULT_LOG_FORMAT = "text"
JSON_LOG_FORMAT = "json"

DECIMAL_SI = "DecimalSI"
BINARY_SI = "BinarySI"
DECIMAL_EXPONENT = "DecimalExponent"

_QUANTITY_ERROR = (
    "quantities must match the regular expression "
    "'^([+-]?[0-9.]+)([eEinumkKMGTP]*[-+]?[0-9]*)$'"
)
_NUMBER = re.compile(r"([+-]?)([0-9]*)(?:\.([0-9]*))?")
_EXPONENT = re.compile(r"[eE]([+-]?[0-9]+)")
_DECIMAL_SUFFIXES = {
    "n": -9, "u": -6, "m": -3, "": 0,
    "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18,
}
_DECIMAL_BY_EXPONENT = {exp: suffix for suffix, exp in _DECIMAL_SUFFIXES.items()}
_BINARY_SUFFIXES = {"Ki": 10, "Mi": 20, "Gi": 30, "Ti": 40, "Pi": 50, "Ei": 60}

_UINT32_MAX = 2**32 - 1
_INT64_MAX = 2**63 - 1


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _away_from_zero(value: Fraction) -> int:
    rounded = math.ceil(abs(value))
    return -rounded if value < 0 else rounded


@dataclass(frozen=True)
class Quantity:
    """A fixed-point amount such as ``512``, ``1k``, ``2Ki`` or ``1500m``."""

    amount: Fraction = Fraction(0)
    format: str = DECIMAL_SI

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Fraction(self.amount))

    @classmethod
    def parse(cls, text: str) -> "Quantity":
        """Parse the textual form of a quantity."""
        if not isinstance(text, str) or not text:
            raise ValueError(_QUANTITY_ERROR)
        match = _NUMBER.match(text)
        sign, whole, frac = match.group(1), match.group(2), match.group(3) or ""
        if not whole and not frac:
            raise ValueError(_QUANTITY_ERROR)
        suffix = text[match.end():]
        amount = Fraction(int((whole or "0") + frac), 10 ** len(frac))
        if sign == "-":
            amount = -amount
        if suffix in _DECIMAL_SUFFIXES:
            return cls(amount * Fraction(10) ** _DECIMAL_SUFFIXES[suffix], DECIMAL_SI)
        if suffix in _BINARY_SUFFIXES:
            return cls(amount * 2 ** _BINARY_SUFFIXES[suffix], BINARY_SI)
        exponent = _EXPONENT.fullmatch(suffix)
        if exponent is not None:
            return cls(amount * Fraction(10) ** int(exponent.group(1)), DECIMAL_EXPONENT)
        raise ValueError("unable to parse quantity's suffix")

    def value(self) -> int:
        """Return the amount as an integer, rounded away from zero."""
        return _away_from_zero(self.amount)

    def _suffix(self, exponent: int) -> str:
        if self.format == DECIMAL_EXPONENT:
            return f"e{exponent}" if exponent else ""
        return _DECIMAL_BY_EXPONENT[exponent]

    def __str__(self) -> str:
        amount = self.amount
        if amount == 0:
            return "0"
        if self.format == BINARY_SI and amount.denominator == 1 and abs(amount) >= 1024:
            number = int(amount)
            for suffix, power in reversed(_BINARY_SUFFIXES.items()):
                if number % (1 << power) == 0:
                    return f"{number // (1 << power)}{suffix}"
            return str(number)
        if amount.denominator == 1:
            number = int(amount)
            for exponent in (18, 15, 12, 9, 6, 3):
                if number % 10**exponent == 0:
                    return f"{number // 10**exponent}{self._suffix(exponent)}"
            return str(number)
        for exponent in (3, 6, 9):
            scaled = amount * 10**exponent
            if scaled.denominator == 1 or exponent == 9:
                return f"{_away_from_zero(scaled)}{self._suffix(-exponent)}"
        raise AssertionError("unreachable")


_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_NUMBER = re.compile(r"([0-9]*)(?:\.([0-9]*))?")
_DIGITS = "0123456789"


def parse_duration(text: str) -> int:
    """Parse a duration such as ``1h30m`` or ``1.5s`` into nanoseconds."""
    if not isinstance(text, str):
        raise TypeError("duration must be a string")
    invalid = ValueError(f"time: invalid duration {_quote(text)}")
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0
    if not rest:
        raise invalid
    total = 0
    while rest:
        if rest[0] != "." and rest[0] not in _DIGITS:
            raise invalid
        match = _DURATION_NUMBER.match(rest)
        whole, frac = match.group(1), match.group(2) or ""
        if not whole and not frac:
            raise invalid
        rest = rest[match.end():]
        end = 0
        while end < len(rest) and rest[end] != "." and rest[end] not in _DIGITS:
            end += 1
        unit, rest = rest[:end], rest[end:]
        if not unit:
            raise ValueError(f"time: missing unit in duration {_quote(text)}")
        if unit not in _DURATION_UNITS:
            raise ValueError(f"time: unknown unit {_quote(unit)} in duration {_quote(text)}")
        scale = _DURATION_UNITS[unit]
        value = int(whole or "0")
        if value > _INT64_MAX // scale:
            raise invalid
        value *= scale
        if frac:
            value += int(Fraction(int(frac), 10 ** len(frac)) * scale)
        total += value
        if total > _INT64_MAX:
            raise invalid
    return -total if negative else total


def _fraction_digits(value: int, precision: int) -> str:
    digits = f"{value:0{precision}d}".rstrip("0")
    return f".{digits}" if digits else ""


def format_duration(nanoseconds: int) -> str:
    """Format nanoseconds the way durations are written, e.g. ``1h0m0s``."""
    total = int(nanoseconds)
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    magnitude = abs(total)
    if magnitude < 1_000:
        return f"{sign}{magnitude}ns"
    if magnitude < 1_000_000:
        whole, rest = divmod(magnitude, 1_000)
        return f"{sign}{whole}{_fraction_digits(rest, 3)}\u00b5s"
    if magnitude < 1_000_000_000:
        whole, rest = divmod(magnitude, 1_000_000)
        return f"{sign}{whole}{_fraction_digits(rest, 6)}ms"
    seconds, nanos = divmod(magnitude, 1_000_000_000)
    minutes, secs = divmod(seconds, 60)
    text = f"{secs}{_fraction_digits(nanos, 9)}s"
    if minutes:
        hours, mins = divmod(minutes, 60)
        text = f"{mins}m{text}"
        if hours:
            text = f"{hours}h{text}"
    return sign + text


@dataclass
class TimeOrMetaDuration:
    """A duration in nanoseconds that serializes as a string or as an integer."""

    duration: int = 0
    serialize_as_string: bool = False

    def _to_value(self) -> Union[str, int]:
        if self.serialize_as_string:
            return format_duration(self.duration)
        return self.duration

    def to_json(self) -> str:
        """Return the JSON text of this duration."""
        return json.dumps(self._to_value(), ensure_ascii=False)

    @classmethod
    def _from_value(cls, value: Any, text: str) -> "TimeOrMetaDuration":
        if isinstance(value, str):
            return cls(parse_duration(value), True)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"invalid duration {_quote(text)}: cannot unmarshal into int64")
        if not -(_INT64_MAX + 1) <= value <= _INT64_MAX:
            raise ValueError(f"invalid duration {_quote(text)}: value out of range")
        return cls(value, False)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "TimeOrMetaDuration":
        """Parse JSON text: a string is a duration, an integer is nanoseconds."""
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        if text[:1] == '"':
            return cls._from_value(json.loads(text), text)
        try:
            value = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid duration {_quote(text)}: {exc}") from None
        return cls._from_value(value, text)


@dataclass
class OutputRoutingOptions:
    """Options shared by the text and JSON formats."""

    split_stream: bool = False
    info_buffer_size: Quantity = field(default_factory=Quantity)


@dataclass
class TextOptions(OutputRoutingOptions):
    """Options for the text format."""


@dataclass
class JSONOptions(OutputRoutingOptions):
    """Options for the JSON format."""


@dataclass
class FormatOptions:
    """Options for the different logging formats."""

    text: TextOptions = field(default_factory=TextOptions)
    json: JSONOptions = field(default_factory=JSONOptions)


@dataclass
class VModuleItem:
    """Verbosity for files whose base name matches a glob pattern."""

    file_pattern: str = ""
    verbosity: int = 0


def _check_object(data: Any, allowed: set[str], path: str) -> None:
    if not isinstance(data, Mapping):
        raise ValueError(f"{path.rstrip('.') or 'configuration'}: expected an object")
    for key in data:
        if key not in allowed:
            raise ValueError(f'unknown field "{path}{key}"')


def _expect_str(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected a string")
    return value


def _expect_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{path}: expected a boolean")
    return value


def _expect_uint32(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{path}: expected an unsigned 32 bit integer")
    return value


def _expect_quantity(value: Any, path: str) -> Quantity:
    if isinstance(value, str):
        return Quantity.parse(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Quantity.parse(str(value))
    raise ValueError(f"{path}: expected a quantity")


def _update_routing(options: OutputRoutingOptions, data: Any, path: str) -> None:
    _check_object(data, {"splitStream", "infoBufferSize"}, path)
    if data.get("splitStream") is not None:
        options.split_stream = _expect_bool(data["splitStream"], path + "splitStream")
    if data.get("infoBufferSize") is not None:
        options.info_buffer_size = _expect_quantity(data["infoBufferSize"], path + "infoBufferSize")


def _routing_dict(options: OutputRoutingOptions) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if options.split_stream:
        result["splitStream"] = True
    result["infoBufferSize"] = str(options.info_buffer_size)
    return result


@dataclass
class LoggingConfiguration:
    """Logging options: format, flush frequency, verbosity and per-file overrides."""

    format: str = ""
    flush_frequency: TimeOrMetaDuration = field(default_factory=TimeOrMetaDuration)
    verbosity: int = 0
    vmodule: list[VModuleItem] = field(default_factory=list)
    options: FormatOptions = field(default_factory=FormatOptions)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoggingConfiguration":
        """Build a configuration from decoded JSON, rejecting unknown fields."""
        config = cls()
        config._update(data)
        return config

    def _update(self, data: Mapping[str, Any]) -> None:
        _check_object(data, {"format", "flushFrequency", "verbosity", "vmodule", "options"}, "")
        if data.get("format") is not None:
            self.format = _expect_str(data["format"], "format")
        if data.get("flushFrequency") is not None:
            value = data["flushFrequency"]
            self.flush_frequency = TimeOrMetaDuration._from_value(
                value, json.dumps(value, ensure_ascii=False)
            )
        if data.get("verbosity") is not None:
            self.verbosity = _expect_uint32(data["verbosity"], "verbosity")
        if data.get("vmodule") is not None:
            entries = data["vmodule"]
            if not isinstance(entries, list):
                raise ValueError("vmodule: expected a list")
            items = []
            for index, entry in enumerate(entries):
                path = f"vmodule[{index}]."
                _check_object(entry, {"filePattern", "verbosity"}, path)
                item = VModuleItem()
                if entry.get("filePattern") is not None:
                    item.file_pattern = _expect_str(entry["filePattern"], path + "filePattern")
                if entry.get("verbosity") is not None:
                    item.verbosity = _expect_uint32(entry["verbosity"], path + "verbosity")
                items.append(item)
            self.vmodule = items
        if data.get("options") is not None:
            options = data["options"]
            _check_object(options, {"text", "json"}, "options.")
            if options.get("text") is not None:
                _update_routing(self.options.text, options["text"], "options.text.")
            if options.get("json") is not None:
                _update_routing(self.options.json, options["json"], "options.json.")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation of this configuration."""
        result: dict[str, Any] = {}
        if self.format:
            result["format"] = self.format
        result["flushFrequency"] = self.flush_frequency._to_value()
        result["verbosity"] = self.verbosity
        if self.vmodule:
            result["vmodule"] = [
                {"filePattern": item.file_pattern, "verbosity": item.verbosity}
                for item in self.vmodule
            ]
        result["options"] = {
            "text": _routing_dict(self.options.text),
            "json": _routing_dict(self.options.json),
        }
        return result

    def deep_copy(self) -> "LoggingConfiguration":
        """Return an independent copy."""
        return copy.deepcopy(self)