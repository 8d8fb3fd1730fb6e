from __future__ import annotations

import pytest

from zhouyi.algo import CoinTossEngine, CoinTosser, LineAccumulator, YaoType

from conftest import engine_for_lines, fixed_coins


def test_six_lines_are_valid_values():
    lines = CoinTossEngine().six_lines()
    assert len(lines) == 6
    assert set(lines) <= {6, 7, 8, 9}


def test_six_yaos_returns_enum_members():
    engine = CoinTossEngine(CoinTosser(fixed_coins(3)))
    assert engine.six_yaos() == [YaoType.Lao_Yang] * 6


def test_accumulator_advances_one_line_at_a_time():
    acc = LineAccumulator(engine_for_lines([6, 7, 8, 9, 7, 8]))
    assert acc.values == ()
    assert acc.advance() == 6
    assert acc.values == (6,)
    assert len(acc) == 1
    assert not acc.exhausted


def test_accumulator_exhausts_after_six_and_stops_drawing():
    calls = []

    def coin():
        calls.append(1)
        return 2

    acc = LineAccumulator(CoinTossEngine(CoinTosser(coin)))
    drawn = [acc.advance() for _ in range(6)]
    assert drawn == [6] * 6
    assert acc.exhausted
    assert len(calls) == 18

    assert acc.advance() is None
    assert acc.advance() is None
    assert len(calls) == 18
    assert acc.values == (6,) * 6


def test_accumulator_is_not_restartable():
    acc = LineAccumulator(engine_for_lines([7] * 6))
    assert list(acc) == [7] * 6
    assert list(acc) == []


def test_accumulator_rejects_non_positive_count():
    with pytest.raises(ValueError):
        LineAccumulator(count=0)


def test_engine_builds_fresh_accumulators():
    engine = CoinTossEngine(CoinTosser(fixed_coins(3)))
    first = engine.accumulator()
    first.advance()
    second = engine.accumulator()
    assert second.values == ()
