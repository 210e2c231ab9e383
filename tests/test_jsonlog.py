import io
import json
import re
from dataclasses import dataclass
from datetime import timedelta

import pytest

from complogs import klog
from complogs.config import LoggingConfiguration, Quantity
from complogs.features import LOGGING_BETA_OPTIONS
from complogs.jsonlog import JSONFactory, JSONSink, new_json_logger
from complogs.registry import LoggingOptions


def _clock():
    return 123


def _norm(text):
    return re.sub(r'"caller":"tests/test_jsonlog\.py:\d+"', '"caller":"C"', text)


@dataclass
class NamespacedName:
    name: str
    namespace: str = ""

    def marshal_log(self):
        data = {"name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        return data


@pytest.fixture
def klog_state():
    state = klog.capture_state()
    yield
    state.restore()


@pytest.mark.parametrize(
    "msg, names, key_values, expected",
    [
        (
            "test", (), ("ns", "default", "podnum", 2),
            '{"ts":0.000123,"caller":"C","msg":"test","v":0,"ns":"default","podnum":2}\n',
        ),
        (
            "test for non-string key argument", (),
            ("ns", "default", "podnum", 2, 200, "replica", "Running", 10),
            '{"ts":0.000123,"caller":"C","msg":"non-string key argument passed to logging, '
            'ignoring all later arguments","invalid key":200}\n'
            '{"ts":0.000123,"caller":"C","msg":"test for non-string key argument","v":0,'
            '"ns":"default","podnum":2}\n',
        ),
        (
            "test for duration value argument", (), ("duration", timedelta(seconds=5)),
            '{"ts":0.000123,"caller":"C","msg":"test for duration value argument","v":0,"duration":"5s"}\n',
        ),
        (
            "test for WithName", ("hello", "world"), (),
            '{"ts":0.000123,"logger":"hello.world","caller":"C","msg":"test for WithName","v":0}\n',
        ),
        (
            "test for duplicate keys", (), ("akey", "avalue", "akey", "anothervalue"),
            '{"ts":0.000123,"caller":"C","msg":"test for duplicate keys","v":0,'
            '"akey":"avalue","akey":"anothervalue"}\n',
        ),
        (
            "test for NamespacedName argument", (),
            ("obj", NamespacedName(name="kube-proxy", namespace="kube-system")),
            '{"ts":0.000123,"caller":"C","msg":"test for NamespacedName argument","v":0,'
            '"obj":{"name":"kube-proxy","namespace":"kube-system"}}\n',
        ),
        (
            "test for NamespacedName argument with no namespace", (),
            ("obj", NamespacedName(name="kube-proxy")),
            '{"ts":0.000123,"caller":"C","msg":"test for NamespacedName argument with no namespace",'
            '"v":0,"obj":{"name":"kube-proxy"}}\n',
        ),
    ],
)
def test_info_format(msg, names, key_values, expected):
    buffer = io.StringIO()
    logger, _ = new_json_logger(0, buffer, None, _clock)
    for name in names:
        logger = logger.with_name(name)
    logger.info(msg, *key_values)
    assert _norm(buffer.getvalue()) == expected


def test_enabled():
    logger, _ = new_json_logger(10, None)
    for v in range(11):
        assert logger.v(v).enabled()
    assert not logger.v(11).enabled()


def test_v_levels():
    for v in range(11):
        buffer = io.StringIO()
        logger, _ = new_json_logger(10, buffer, None, _clock)
        logger.v(v).info("test", "ns", "default", "podnum", 2, "time", timedelta(microseconds=1))
        expected = (
            '{"ts":0.000123,"caller":"C","msg":"test","v":%d,"ns":"default","podnum":2,"time":"1\u00b5s"}\n' % v
        )
        assert _norm(buffer.getvalue()) == expected


def test_error_format():
    buffer = io.StringIO()
    logger, _ = new_json_logger(0, buffer, None, _clock)
    logger.error(
        ValueError("invalid namespace:default"), "wrong namespace",
        "ns", "default", "podnum", 2, "time", timedelta(microseconds=1),
    )
    data = json.loads(buffer.getvalue())
    assert data.pop("caller").startswith("tests/test_jsonlog.py:")
    assert data == {
        "ts": 0.000123,
        "msg": "wrong namespace",
        "ns": "default",
        "podnum": 2,
        "time": "1\u00b5s",
        "err": "invalid namespace:default",
    }


def test_streams():
    info, err = io.StringIO(), io.StringIO()
    logger, _ = new_json_logger(0, info, err, _clock)
    logger.error(ValueError("some error"), "failed")
    logger.info("hello world")
    assert _norm(err.getvalue()) == '{"ts":0.000123,"caller":"C","msg":"failed","err":"some error"}\n'
    assert _norm(info.getvalue()) == '{"ts":0.000123,"caller":"C","msg":"hello world","v":0}\n'


def test_runtime_verbosity_change():
    buffer = io.StringIO()
    logger, control = new_json_logger(0, buffer, None, _clock)
    logger.v(1).info("hidden")
    assert buffer.getvalue() == ""
    control.set_verbosity_level(1)
    logger.v(1).info("shown")
    assert '"msg":"shown","v":1' in buffer.getvalue()


def test_sink_error_always_enabled():
    buffer = io.StringIO()
    sink = JSONSink(0, buffer, clock=_clock)
    sink.error(None, "bad")
    assert _norm(buffer.getvalue()) == '{"ts":0.000123,"caller":"C","msg":"bad"}\n'


@pytest.mark.parametrize(
    "level, expected",
    [
        (0, '{"ts":0.000123,"caller":"C","msg":"test","v":0,"count":1}'),
        (1, '{"ts":0.000123,"caller":"C","msg":"test","v":1,"count":1}'),
        (2, '{"ts":0.000123,"caller":"C","msg":"test","v":2,"count":1}'),
        (3, ""),
    ],
)
def test_klog_integration_info(klog_state, level, expected):
    buffer = io.StringIO()
    logger, _ = new_json_logger(100, buffer, None, _clock)
    klog.set_logger(logger, contextual=False)
    klog.set_verbosity(2)
    klog.background().v(level).info("test", "count", 1)
    assert _norm(buffer.getvalue()).rstrip("\n") == expected


def test_klog_integration_errors(klog_state):
    buffer = io.StringIO()
    logger, _ = new_json_logger(100, buffer, None, _clock)
    klog.set_logger(logger, contextual=False)
    klog.background().error(ValueError("fail"), "test", "count", 1)
    klog.background().error(None, "test 1")
    lines = _norm(buffer.getvalue()).splitlines()
    assert lines == [
        '{"ts":0.000123,"caller":"C","msg":"test","count":1,"err":"fail"}',
        '{"ts":0.000123,"caller":"C","msg":"test 1"}',
    ]


class _CountingWriter:
    def __init__(self):
        self.write_count = 0

    def write(self, data):
        self.write_count += 1
        return len(data)


def test_klog_v(klog_state):
    buffer = _CountingWriter()
    logger, _ = new_json_logger(100, buffer)
    klog.set_logger(logger, contextual=False)
    total = 0
    for i in range(11):
        klog.set_verbosity(i)
        for j in range(11):
            klog.background().v(j).info("test", "time", timedelta(microseconds=1))
            written = buffer.write_count > 0
            total += buffer.write_count
            buffer.write_count = 0
            assert written == (j <= i)
    assert total == 66


def test_factory_feature():
    assert JSONFactory().feature() == LOGGING_BETA_OPTIONS


def test_factory_single_stream():
    info, err = io.StringIO(), io.StringIO()
    logger, _ = JSONFactory().create(LoggingConfiguration(), LoggingOptions(err, info))
    logger.info("hello world")
    assert info.getvalue() == ""
    assert json.loads(err.getvalue())["msg"] == "hello world"


def test_factory_split_buffered():
    info, err = io.StringIO(), io.StringIO()
    config = LoggingConfiguration()
    config.options.json.split_stream = True
    config.options.json.info_buffer_size = Quantity.parse("1024")
    logger, control = JSONFactory().create(config, LoggingOptions(err, info))
    logger.info("hello world")
    logger.error(ValueError("some error"), "failed")
    assert info.getvalue() == ""
    assert json.loads(err.getvalue())["err"] == "some error"
    control.flush()
    assert json.loads(info.getvalue())["msg"] == "hello world"