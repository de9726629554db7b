import logging

from cashguard.core.logs import ThrottledLogger


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_messages_are_rate_limited_per_key(caplog):
    clock = FakeClock()
    log = ThrottledLogger(logging.getLogger("cashguard.test"), interval_s=1.0, clock=clock)
    with caplog.at_level(logging.DEBUG, logger="cashguard.test"):
        assert log.debug("pose", "first %d", 1) is True
        clock.now = 0.5
        assert log.debug("pose", "second") is False
        assert log.debug("hands", "other key") is True
        clock.now = 1.0
        assert log.debug("pose", "third") is True
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["first 1", "other key", "third"]


def test_disabled_level_does_not_consume_the_slot(caplog):
    clock = FakeClock()
    log = ThrottledLogger(logging.getLogger("cashguard.test2"), interval_s=5.0, clock=clock)
    with caplog.at_level(logging.INFO, logger="cashguard.test2"):
        assert log.debug("k", "hidden") is False
        assert log.info("k", "shown") is True
    assert [r.getMessage() for r in caplog.records] == ["shown"]
