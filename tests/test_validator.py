import pytest

from conftest import make_snapshot
from market_data.validator import SnapshotValidator
from shared.config.schema import ValidatorConfig


@pytest.fixture
def validator():
    return SnapshotValidator(ValidatorConfig())


def test_accepts_sane_snapshot_and_tracks_mid(validator):
    ok, reason = validator.validate(make_snapshot(price=50000.0))
    assert ok is True
    assert reason == "OK"
    assert validator.last_valid_mid == 50000.0


@pytest.mark.parametrize(
    "snap, expected",
    [
        (make_snapshot(price=0.0, spread=0.0), "Invalid prices"),
        (make_snapshot(price=5000.0), "outside valid range"),
        (make_snapshot(price=250000.0), "outside valid range"),
        (make_snapshot(price=50000.0, spread=-2.0), "Crossed book"),
        (make_snapshot(price=50000.0, spread=3000.0), "Spread"),
        (make_snapshot(price=50000.0, bid_qty=0.0), "Invalid sizes"),
    ],
)
def test_rejections(validator, snap, expected):
    ok, reason = validator.validate(snap)
    assert ok is False
    assert expected in reason
    assert validator.rejected == 1


def test_price_jump_relative_to_last_valid(validator):
    assert validator.validate(make_snapshot(price=50000.0))[0] is True
    ok, reason = validator.validate(make_snapshot(price=52000.0))
    assert ok is False
    assert "Price jump" in reason
    # 被拒绝的快照不刷新参考价
    assert validator.last_valid_mid == 50000.0
    assert validator.validate(make_snapshot(price=50500.0))[0] is True


def test_stats_and_reset(validator):
    validator.validate(make_snapshot(price=50000.0))
    validator.validate(make_snapshot(price=5000.0))

    stats = validator.stats()
    assert stats.total == 2
    assert stats.valid == 1
    assert stats.rejection_rate == pytest.approx(0.5)

    validator.reset_stats()
    assert validator.stats().total == 0
    assert validator.stats().last_valid_mid == 50000.0
