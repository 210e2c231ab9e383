# complogs

Logging support for long-running components: a validated logging
configuration, runtime verbosity control, a text log format and a JSON
log format, suppression of repeated messages, detection of sensitive
data in logged values, histogram bucket helpers, and a small runner that
starts a command and captures its output into a log file.

The package uses only the Python standard library.

## Installation

```
pip install complogs
```

To run the test suite:

```
pip install "complogs[test]"
pytest
```

## Logging configuration

`complogs.config.LoggingConfiguration` holds the log format, the flush
frequency (`TimeOrMetaDuration`, in nanoseconds), the verbosity
threshold, per-file verbosity overrides (`vmodule`, a list of
`VModuleItem`) and `options` that can route info and error messages to
separate streams, optionally buffering the info stream (sizes are
`Quantity` values such as `512`, `1K` or `2Ki`).

```python
from complogs.options import new_logging_configuration, validate_and_apply

config = new_logging_configuration()   # format "text", flush every 5s
config.verbosity = 2
validate_and_apply(config, None)
```

- `validate(config, feature_gate, field_path)` returns a list of
  `FieldError` without applying anything.
- `validate_and_apply` raises `ValidationError` (a `ValueError` listing
  every problem) for invalid settings, and `RuntimeError` when a
  configuration was already applied. `set_reapply_handling(ReapplyHandling.IGNORE_UNCHANGED)`
  lets an unchanged configuration be applied again.
- `validate_and_apply_with_options` takes a `LoggingOptions` with
  explicit `error_stream` and `info_stream`.
- `reset_for_test` restores the default configuration.

A feature gate is either `None`, a mapping from feature names to
booleans, or an object with an `enabled(name)` method. The features are
listed by `complogs.features.feature_gates()`: `ContextualLogging`,
`LoggingAlphaOptions` (needed for the split-stream options) and
`LoggingBetaOptions` (needed for the JSON format, on by default).

`add_flags(config, parser)` adds `--logging-format`,
`--log-flush-frequency`, `-v`/`--v`, `--vmodule`,
`--log-text-split-stream` and `--log-text-info-buffer-size` to an
`argparse` parser (plus the `--log-json-*` variants once the JSON format
is registered), writing parsed values into `config`. It freezes the
format registry.

`LoggingConfiguration.from_dict` and `to_dict` convert to and from
decoded JSON with the field names `format`, `flushFrequency`,
`verbosity`, `vmodule` and `options`; unknown fields are rejected.
`parse_duration` and `format_duration` handle durations such as `1h30m`.

## Log formats

The text format is always registered. `register_json_format()` from
`complogs.registry` adds the JSON format; further formats can be added
with `register_log_format(name, factory, feature)` until the registry is
frozen. `complogs.jsonlog.new_json_logger(verbosity, info_stream,
error_stream, clock)` builds a JSON logger directly.

## Verbosity and the global logger

`complogs.klog` keeps the process-wide state: `set_verbosity`,
`set_vmodule`, `set_logger`, `background()`, `flush()`, a periodic flush
thread (`start_flush_daemon`) and `capture_state()` for restoring it
later. `Logger` offers `v`, `info`, `error`, `with_name` and
`with_values`.

`glog_setter` from `complogs.logs` changes the verbosity of the whole
program at runtime, including loggers created by the applied log format:

```python
from complogs.logs import glog_setter

print(glog_setter("3"))
```

`complogs.logs` also offers `add_flags`, `init_logs` (routes standard
library logging to the global logger), `new_logger` and `flush_logs`.

## vmodule values

```python
from complogs.pflags import parse_vmodule, format_vmodule

items = parse_vmodule("foo=1,bar=2,")
print(format_vmodule(items))  # foo=1,bar=2
```

## Log reduction

`complogs.logreduction.LogReduction(delay)` prints a message for a given
parent id at most once per interval (seconds or a `timedelta`) unless the
message changes in between; `clear_id` forgets a parent id.

## Sensitive data

`complogs.datapol.verify(value)` returns the kinds of sensitive data
(such as `"password"` or `"token"`) found in a value. Dataclass fields
declare them with `field(metadata={"datapolicy": "password"})`; header,
cookie and certificate types of the standard library and well-known
packages are recognised by type, as reported by
`global_datapolicy_mapping(value)`.

## Buckets

`linear_buckets`, `exponential_buckets`, `exponential_buckets_range`,
`merge_buckets` and `DEF_BUCKETS` in `complogs.buckets` produce bucket
boundaries for histograms.

## Commands

`complogs-runner` starts a command, sends its output to a log file and
forwards termination signals to it:

```
complogs-runner --log-file /tmp/app.log --also-stdout -- my-server --port 8080
```

- `--log-file PATH`: append the command's standard output to this file.
- `--also-stdout`: with `--log-file`, also write to standard output.
- `--redirect-stderr`: treat standard error like standard output (on by
  default; `--redirect-stderr=false` turns it off).

`complogs-example` applies the logging options and writes sample output:

```
complogs-example -v 5 --logging-format text
```

## What this package does not do

It provides bucket boundaries only: there are no metric types (counters,
gauges, histograms), no metric registry and no exposition format. Feature
gates are plain mappings or caller-supplied objects; the package has no
feature gate implementation of its own.