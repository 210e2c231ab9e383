from datetime import timedelta

from complogs.logreduction import LogReduction

MESG1 = "This is a message"
MESG2 = "This is not a message"
ID1 = "Container1"
ID2 = "Container2"


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_log_reduction_sequence():
    clock = FakeClock(1000.0)
    r = LogReduction(10, clock)
    assert r.should_message_be_printed(MESG1, ID1)
    assert not r.should_message_be_printed(MESG1, ID1)
    assert r.should_message_be_printed(MESG1, ID2)
    assert not r.should_message_be_printed(MESG1, ID1)
    clock.now = 1001.0
    assert not r.should_message_be_printed(MESG1, ID1)
    clock.now = 1012.0
    assert r.should_message_be_printed(MESG1, ID1)
    assert not r.should_message_be_printed(MESG1, ID1)
    assert r.should_message_be_printed(MESG2, ID1)
    assert r.should_message_be_printed(MESG1, ID1)
    assert r.should_message_be_printed(MESG1, ID2)
    r.clear_id(ID1)
    assert r.should_message_be_printed(MESG1, ID1)
    assert not r.should_message_be_printed(MESG1, ID2)


def test_timedelta_delay():
    clock = FakeClock(0.0)
    r = LogReduction(timedelta(seconds=10), clock)
    assert r.should_message_be_printed(MESG1, ID1)
    clock.now = 9.0
    assert not r.should_message_be_printed(MESG1, ID1)
    clock.now = 19.0
    assert r.should_message_be_printed(MESG1, ID1)


def test_clear_unknown_id_is_harmless():
    r = LogReduction(10, FakeClock(0.0))
    r.clear_id("missing")
    assert r.should_message_be_printed(MESG1, "missing")