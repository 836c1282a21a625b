"""Tests for the datastore circuit breaker, throttled error logging and signal dispatch."""
import logging

import pytest
import redis
from sqlalchemy.exc import OperationalError

from modconsole.commands.signals import InlineSignalDispatcher
from modconsole.core.exceptions import ServiceUnavailableError
from modconsole.core.throttle import LogThrottle
from modconsole.db.session import CircuitBreaker


def _outage():
    raise OperationalError("SELECT 1", {}, Exception("connection refused"))


class TestCircuitBreaker:

    def test_outage_opens_the_breaker(self, clock):
        breaker = CircuitBreaker(open_seconds=10, clock=clock)
        with pytest.raises(ServiceUnavailableError):
            breaker.call(_outage)
        assert breaker.is_open

    def test_open_breaker_fails_fast(self, clock):
        breaker = CircuitBreaker(open_seconds=10, clock=clock)
        calls = []
        with pytest.raises(ServiceUnavailableError):
            breaker.call(_outage)
        with pytest.raises(ServiceUnavailableError):
            breaker.call(lambda: calls.append(1))
        assert calls == []

    def test_breaker_closes_after_the_window(self, clock):
        breaker = CircuitBreaker(open_seconds=10, clock=clock)
        with pytest.raises(ServiceUnavailableError):
            breaker.call(_outage)
        clock.advance(seconds=11)
        assert breaker.call(lambda: "ok") == "ok"
        assert not breaker.is_open

    def test_other_errors_pass_through(self, clock):
        breaker = CircuitBreaker(open_seconds=10, clock=clock)
        with pytest.raises(KeyError):
            breaker.call(lambda: {}["missing"])
        assert not breaker.is_open


class TestLogThrottle:

    def test_one_record_per_interval(self, caplog):
        now = [0.0]
        throttle = LogThrottle(10, monotonic=lambda: now[0])
        logger = logging.getLogger("modconsole.test")

        with caplog.at_level(logging.ERROR, logger="modconsole.test"):
            assert throttle.error(logger, "k", "boom %s", 1)
            assert not throttle.error(logger, "k", "boom %s", 2)
            assert not throttle.error(logger, "k", "boom %s", 3)
            now[0] = 11.0
            assert throttle.error(logger, "k", "boom %s", 4)

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["boom 1", "boom 4 (2 similar messages suppressed)"]

    def test_keys_are_independent(self):
        throttle = LogThrottle(10, monotonic=lambda: 0.0)
        assert throttle.should_log("a") == 0
        assert throttle.should_log("b") == 0
        assert throttle.should_log("a") is None


class _FanOutDown:

    def maybe_record_high_risk_command_burst(self, db, community_id, user_id):
        raise redis.ConnectionError("redis unavailable")

    def maybe_record_approval_spam(self, db, community_id, user_id):
        raise RuntimeError("detector bug")


class TestInlineSignalDispatcher:

    def test_detector_failures_do_not_reach_the_caller(self, db_session, community, caplog):
        dispatcher = InlineSignalDispatcher(_FanOutDown())
        with caplog.at_level(logging.ERROR, logger="modconsole.signals"):
            dispatcher.high_risk_executed(db_session, community.id, "u" * 32)
            dispatcher.approval_submitted(db_session, community.id, "u" * 32)
        assert len([r for r in caplog.records if r.name == "modconsole.signals"]) == 2
        # the session is still usable
        assert db_session.get(type(community), community.id) is not None
