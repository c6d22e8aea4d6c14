import math

import pytest

from algo.factors.ema import SeededEMA
from algo.factors.volatility import relative_volatility
from algo.regime.classifier import RegimeClassifier
from conftest import make_snapshot
from shared.models.models import Regime


def _feed(classifier: RegimeClassifier, prices) -> Regime:
    regime = Regime.RANGING
    for p in prices:
        regime = classifier.classify(make_snapshot(price=p))
    return regime


def test_insufficient_samples_is_ranging():
    clf = RegimeClassifier()
    # 强烈上涨，但样本不足 60 个
    for i in range(59):
        assert clf.classify(make_snapshot(price=50000.0 * (1 + 0.01 * i))) == Regime.RANGING
    assert len(clf) == 59


def test_monotonic_rise_is_uptrend():
    clf = RegimeClassifier()
    regime = _feed(clf, [50000.0 + 25.0 * i for i in range(100)])

    assert regime == Regime.UPTREND
    assert clf.current == Regime.UPTREND
    # 状态查询幂等
    assert clf.current == Regime.UPTREND


def test_monotonic_fall_is_downtrend():
    clf = RegimeClassifier()
    assert _feed(clf, [50000.0 - 25.0 * i for i in range(100)]) == Regime.DOWNTREND


def test_quiet_oscillation_is_ranging():
    clf = RegimeClassifier()
    prices = [50000.0 + 20.0 * math.sin(i / 3.0) for i in range(200)]
    assert _feed(clf, prices) == Regime.RANGING


def test_volatility_burst_beats_trend():
    clf = RegimeClassifier()
    calm = [50000.0 + (1.0 if i % 2 else -1.0) for i in range(240)]
    # 最后 60 个样本剧烈震荡
    wild = [50000.0 + (400.0 if i % 2 else -400.0) for i in range(60)]
    assert _feed(clf, calm + wild) == Regime.HIGH_VOLATILITY


def test_window_is_bounded():
    clf = RegimeClassifier(window=300)
    _feed(clf, [50000.0] * 350)
    assert len(clf) == 300


def test_seeded_ema_matches_recursive_definition():
    values = [float(v) for v in range(1, 31)]
    period = 10
    expected = sum(values[:period]) / period
    k = 2.0 / (period + 1)
    for v in values[period:]:
        expected = v * k + expected * (1 - k)

    assert SeededEMA(period=period).latest(values) == pytest.approx(expected)
    # 样本不足时退化为均值
    assert SeededEMA(period=50).latest(values) == pytest.approx(sum(values) / len(values))


def test_relative_volatility_uses_population_std():
    values = [10.0, 12.0, 14.0]
    std = math.sqrt(((10 - 12) ** 2 + 0 + (14 - 12) ** 2) / 3)
    assert relative_volatility(values, 3) == pytest.approx(std / 12.0)
    assert relative_volatility([5.0], 10) == 0.0
