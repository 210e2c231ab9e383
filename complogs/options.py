"""Validation and application of the logging configuration."""

from __future__ import annotations

import argparse
import difflib
import json
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Iterable, NamedTuple, Optional

from . import klog
from .config import (
    DEFAULT_LOG_FORMAT,
    JSON_LOG_FORMAT,
    LoggingConfiguration,
    Quantity,
    format_duration,
    parse_duration,
)
from .features import (
    CONTEXTUAL_LOGGING,
    CONTEXTUAL_LOGGING_DEFAULT,
    LOGGING_ALPHA_OPTIONS,
    LOGGING_STABLE_OPTIONS,
    feature_enabled,
    feature_gates,
)
from .pflags import format_verbosity, format_vmodule, parse_verbosity, parse_vmodule
from .registry import LoggingOptions, default_registry

# Default maximum time between log flushes, in nanoseconds.
LOG_FLUSH_FREQ_DEFAULT = 5_000_000_000
LOG_FLUSH_FREQ_FLAG_NAME = "log-flush-frequency"

_MAX_INT32 = 2**31 - 1

FIELD_VALUE_INVALID = "FieldValueInvalid"
FIELD_VALUE_FORBIDDEN = "FieldValueForbidden"
FIELD_VALUE_REQUIRED = "FieldValueRequired"

_TYPE_NAMES = {
    FIELD_VALUE_INVALID: "Invalid value",
    FIELD_VALUE_FORBIDDEN: "Forbidden",
    FIELD_VALUE_REQUIRED: "Required value",
}


class ReapplyHandling(IntEnum):
    """What happens when the configuration gets applied more than once."""

    # A second application is an error.
    ERROR = 0
    # A second application is ignored if unchanged, otherwise an error.
    IGNORE_UNCHANGED = 1


def _format_bad_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        # Verbosity levels are unsigned and shown in hex.
        return f"0x{value:x}"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


@dataclass(frozen=True)
class FieldError:
    """One problem with one field of the configuration."""

    type: str
    field: str
    bad_value: Any = ""
    detail: str = ""

    def _body(self) -> str:
        name = _TYPE_NAMES.get(self.type, self.type)
        if self.type in (FIELD_VALUE_FORBIDDEN, FIELD_VALUE_REQUIRED):
            body = name
        else:
            body = f"{name}: {_format_bad_value(self.bad_value)}"
        if self.detail:
            body += f": {self.detail}"
        return body

    def __str__(self) -> str:
        return f"{self.field}: {self._body()}"


class ValidationError(ValueError):
    """Raised when a configuration has one or more invalid fields."""

    def __init__(self, errors: Iterable[FieldError]) -> None:
        self.errors = list(errors)
        messages = list(dict.fromkeys(str(error) for error in self.errors))
        if len(messages) == 1:
            text = messages[0]
        else:
            text = "[" + ", ".join(messages) + "]"
        super().__init__(text)


def _child(path: Optional[str], name: str) -> str:
    return f"{path}.{name}" if path else name


def _index(path: str, index: int) -> str:
    return f"{path}[{index}]"


def new_logging_configuration() -> LoggingConfiguration:
    """Return a configuration holding the defaults."""
    config = LoggingConfiguration()
    set_recommended_logging_configuration(config)
    return config


def set_recommended_logging_configuration(config: LoggingConfiguration) -> None:
    """Fill in the defaults for fields that are unset."""
    if config.format == "":
        config.format = DEFAULT_LOG_FORMAT
    if config.flush_frequency.duration == 0:
        config.flush_frequency.duration = LOG_FLUSH_FREQ_DEFAULT
        config.flush_frequency.serialize_as_string = True
    for routing in (config.options.text, config.options.json):
        if routing.info_buffer_size is None:
            routing.info_buffer_size = Quantity()


class _LoggingFlag(NamedTuple):
    name: str
    default: str
    value: str


_KLOG_FLAGS: dict[str, tuple[str, Callable[[], str]]] = {
    "v": ("0", lambda: str(klog.get_verbosity())),
    "vmodule": ("", klog.get_vmodule),
}

# Flags that every log format honors.
_SUPPORTED_LOGS_FLAGS = {"v"}


def unsupported_logging_flags() -> list[_LoggingFlag]:
    """Return the process-wide logging flags not honored by every format.

    Each entry holds the normalized name, the default and the current value.
    """
    flags = [
        _LoggingFlag(name.replace("_", "-"), default, current())
        for name, (default, current) in _KLOG_FLAGS.items()
        if name not in _SUPPORTED_LOGS_FLAGS
    ]
    return sorted(flags, key=lambda flag: flag.name)


def validate(
    config: LoggingConfiguration,
    feature_gate: Any = None,
    field_path: Optional[str] = None,
) -> list[FieldError]:
    """Return the problems with ``config`` without applying it."""
    errors: list[FieldError] = []
    format_path = _child(field_path, "format")
    if config.format != DEFAULT_LOG_FORMAT:
        for flag in unsupported_logging_flags():
            if flag.default != flag.value:
                errors.append(FieldError(
                    FIELD_VALUE_INVALID, format_path, config.format,
                    f"Non-default format doesn't honor flag: {flag.name}",
                ))
    try:
        log_format = default_registry().get(config.format)
    except ValueError:
        errors.append(FieldError(FIELD_VALUE_INVALID, format_path, config.format, "Unsupported log format"))
    else:
        if log_format.feature != LOGGING_STABLE_OPTIONS:
            if feature_gate is None:
                enabled = feature_gates()[log_format.feature].default
            else:
                enabled = feature_enabled(feature_gate, log_format.feature)
            if not enabled:
                errors.append(FieldError(
                    FIELD_VALUE_FORBIDDEN, format_path, "",
                    f"Log format {config.format} is disabled, see {log_format.feature} feature",
                ))

    # The field holds an unsigned value, but only signed 32 bit ones are accepted.
    if config.verbosity > _MAX_INT32:
        errors.append(FieldError(
            FIELD_VALUE_INVALID, _child(field_path, "verbosity"), config.verbosity,
            f"Must be <= {_MAX_INT32}",
        ))
    vmodule_path = _child(field_path, "vmodule")
    if config.vmodule and config.format not in ("", "text"):
        errors.append(FieldError(FIELD_VALUE_FORBIDDEN, vmodule_path, "", "Only supported for text log format"))
    for index, item in enumerate(config.vmodule):
        item_path = _index(vmodule_path, index)
        if item.file_pattern == "":
            errors.append(FieldError(FIELD_VALUE_REQUIRED, item_path, "", "File pattern must not be empty"))
        if "=" in item.file_pattern or "," in item.file_pattern:
            errors.append(FieldError(
                FIELD_VALUE_INVALID, item_path, item.file_pattern,
                "File pattern must not contain equal sign or comma",
            ))
        if item.verbosity > _MAX_INT32:
            errors.append(FieldError(
                FIELD_VALUE_INVALID, item_path, item.verbosity, f"Must be <= {_MAX_INT32}",
            ))

    options_path = _child(field_path, "options")
    for name, routing in (("text", config.options.text), ("json", config.options.json)):
        routing_path = _child(options_path, name)
        if routing.split_stream and not feature_enabled(feature_gate, LOGGING_ALPHA_OPTIONS):
            errors.append(FieldError(
                FIELD_VALUE_FORBIDDEN, _child(routing_path, "splitStream"), "",
                f"Feature {LOGGING_ALPHA_OPTIONS} is disabled",
            ))
        if routing.info_buffer_size.value() != 0 and not feature_enabled(feature_gate, LOGGING_ALPHA_OPTIONS):
            errors.append(FieldError(
                FIELD_VALUE_FORBIDDEN, _child(routing_path, "infoBufferSize"), "",
                f"Feature {LOGGING_ALPHA_OPTIONS} is disabled",
            ))
    return errors


@dataclass(frozen=True)
class _Parameters:
    config: LoggingConfiguration
    options: Optional[LoggingOptions]
    contextual_logging_enabled: bool

    def describe(self) -> list[str]:
        options = None
        if self.options is not None:
            options = {
                "ErrorStream": repr(self.options.error_stream),
                "InfoStream": repr(self.options.info_stream),
            }
        data = {
            "C": self.config.to_dict(),
            "Options": options,
            "ContextualLoggingEnabled": self.contextual_logging_enabled,
        }
        return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False).splitlines()


_apply_lock = threading.Lock()
_applied: Optional[_Parameters] = None
_reapply_handling = ReapplyHandling.ERROR


def set_reapply_handling(handling: Any) -> ReapplyHandling:
    """Choose how repeated applications are handled; returns the previous choice."""
    global _reapply_handling
    try:
        chosen = ReapplyHandling(handling)
    except ValueError:
        raise ValueError(f"invalid value {handling} for ReapplyHandling") from None
    with _apply_lock:
        previous, _reapply_handling = _reapply_handling, chosen
    return previous


def _apply(config: LoggingConfiguration, options: Optional[LoggingOptions], feature_gate: Any) -> None:
    global _applied
    contextual = CONTEXTUAL_LOGGING_DEFAULT
    if feature_gate is not None:
        contextual = feature_enabled(feature_gate, CONTEXTUAL_LOGGING)
    params = _Parameters(config.deep_copy(), options, contextual)

    with _apply_lock:
        old = _applied
        if old is not None:
            if _reapply_handling == ReapplyHandling.ERROR:
                raise RuntimeError("logging configuration was already applied earlier, changing it is not allowed")
            if old != params:
                diff = "\n".join(
                    line for line in difflib.ndiff(old.describe(), params.describe())
                    if line[:2] in ("- ", "+ ")
                )
                raise RuntimeError(
                    "the logging configuration should not be changed after setting it once "
                    f"(- old setting, + new setting):\n{diff}"
                )
            return
        _applied = params

    try:
        factory = default_registry().get(config.format).factory
    except ValueError:
        factory = None
    if factory is None:
        klog.clear_logger()
    else:
        if options is None:
            options = LoggingOptions()
        logger, control = factory.create(config, options)
        if control.set_verbosity_level is not None:
            klog.add_verbosity_callback(control.set_verbosity_level)
        klog.set_logger(logger, flush=control.flush, contextual=contextual)
    try:
        klog.set_verbosity(format_verbosity(config.verbosity))
    except ValueError as exc:
        raise RuntimeError(f"internal error while setting klog verbosity: {exc}") from exc
    try:
        klog.set_vmodule(format_vmodule(config.vmodule))
    except ValueError as exc:
        raise RuntimeError(f"internal error while setting klog vmodule: {exc}") from exc
    klog.start_flush_daemon(config.flush_frequency.duration / 1e9)
    klog.enable_contextual_logging(contextual)


def _validate_and_apply(
    config: LoggingConfiguration,
    options: Optional[LoggingOptions],
    feature_gate: Any,
    field_path: Optional[str],
) -> None:
    errors = validate(config, feature_gate, field_path)
    if errors:
        raise ValidationError(errors)
    _apply(config, options, feature_gate)


def validate_and_apply(config: LoggingConfiguration, feature_gate: Any = None) -> None:
    """Validate ``config`` and make it the process-wide logging setup.

    Raises ValidationError for invalid settings and RuntimeError when a
    configuration was already applied.
    """
    _validate_and_apply(config, None, feature_gate, None)


def validate_and_apply_with_options(
    config: LoggingConfiguration,
    options: Optional[LoggingOptions],
    feature_gate: Any = None,
) -> None:
    """Like validate_and_apply, with explicit output streams."""
    _validate_and_apply(config, options, feature_gate, None)


def validate_and_apply_as_field(
    config: LoggingConfiguration,
    feature_gate: Any = None,
    field_path: Optional[str] = None,
) -> None:
    """Like validate_and_apply, for a configuration embedded at ``field_path``."""
    _validate_and_apply(config, None, feature_gate, field_path)


def reset_for_test(feature_gate: Any = None) -> None:
    """Restore the default configuration so that another can be applied."""
    global _applied
    with _apply_lock:
        if _applied is None:
            return
        _applied = None
    try:
        validate_and_apply(new_logging_configuration(), feature_gate)
    except (ValidationError, RuntimeError) as exc:
        raise RuntimeError(f"apply default configuration: {exc}") from exc
    finally:
        with _apply_lock:
            _applied = None


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f'strconv.ParseBool: parsing "{value}": invalid syntax')


class _ConfigAction(argparse.Action):
    """Stores a parsed option value straight into the configuration."""

    def __init__(self, option_strings, dest, setter, **kwargs):
        super().__init__(option_strings, dest, **kwargs)
        self._setter = setter

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            result = self._setter(values)
        except ValueError as exc:
            raise argparse.ArgumentError(self, str(exc)) from None
        setattr(namespace, self.dest, result)


def _add(parser: argparse.ArgumentParser, *names: str, setter: Callable[[str], Any], **kwargs: Any) -> None:
    parser.add_argument(*names, action=_ConfigAction, setter=setter, default=argparse.SUPPRESS, **kwargs)


_BUFFER_SIZE_HELP = (
    "The default value of zero bytes disables buffering. The size can be specified as number "
    "of bytes (512), multiples of 1000 (1K), multiples of 1024 (2Ki), or powers of those "
    "(3M, 4G, 5Mi, 6Gi). Enable the LoggingAlphaOptions feature gate to use this."
)


def add_flags(config: LoggingConfiguration, parser: argparse.ArgumentParser) -> None:
    """Add command line options that write into ``config`` when parsed.

    Freezes the registry of log formats.
    """
    registry = default_registry()
    formats = registry.list()

    def set_format(value: str) -> str:
        config.format = value
        return value

    _add(parser, "--logging-format", setter=set_format, metavar="string",
         help=f'Sets the log format. Permitted formats: {formats}. (default "{config.format}")')
    # No new log formats may be added once the options exist.
    registry.freeze()

    def set_flush_frequency(value: str) -> int:
        config.flush_frequency.duration = parse_duration(value)
        return config.flush_frequency.duration

    _add(parser, f"--{LOG_FLUSH_FREQ_FLAG_NAME}", setter=set_flush_frequency, metavar="duration",
         help="Maximum number of seconds between log flushes "
              f"(default {format_duration(config.flush_frequency.duration)})")

    def set_verbosity(value: str) -> int:
        config.verbosity = parse_verbosity(value)
        return config.verbosity

    _add(parser, "-v", "--v", setter=set_verbosity, metavar="Level",
         help="number for the log level verbosity")

    def set_vmodule(value: str) -> str:
        config.vmodule.extend(parse_vmodule(value))
        return format_vmodule(config.vmodule)

    _add(parser, "--vmodule", setter=set_vmodule, metavar="pattern=N,...",
         help="comma-separated list of pattern=N settings for file-filtered logging "
              "(only works for text log format)")

    routings = [("text", "text", config.options.text)]
    try:
        registry.get(JSON_LOG_FORMAT)
    except ValueError:
        pass
    else:
        routings.append(("json", "JSON", config.options.json))

    for name, title, routing in routings:
        def set_split(value: str, routing=routing) -> bool:
            routing.split_stream = _parse_bool(value)
            return routing.split_stream

        def set_size(value: str, routing=routing) -> str:
            routing.info_buffer_size = Quantity.parse(value)
            return str(routing.info_buffer_size)

        _add(parser, f"--log-{name}-split-stream", setter=set_split, nargs="?", const="true",
             metavar="bool",
             help=f"[Alpha] In {title} format, write error messages to stderr and info messages "
                  "to stdout. The default is to write a single stream to stdout. Enable the "
                  "LoggingAlphaOptions feature gate to use this.")
        _add(parser, f"--log-{name}-info-buffer-size", setter=set_size, metavar="quantity",
             help=f"[Alpha] In {title} format with split output streams, the info messages can "
                  f"be buffered for a while to increase performance. {_BUFFER_SIZE_HELP}")