from __future__ import annotations

from itertools import cycle

import pytest

from zhouyi.algo import CoinTossEngine, CoinTosser, DivinationSequencer, HexagramRepository, ManualClock


def fixed_coins(*faces: int):
    """按顺序循环返回给定的硬币面。"""
    it = cycle(faces)
    return lambda: next(it)


def engine_for_lines(lines):
    """构造一个依次产出给定爻值的引擎（每爻三枚硬币）。"""
    coins = []
    for value in lines:
        heads = value - 6  # 背（3）的个数
        coins.extend([3] * heads + [2] * (3 - heads))
    return CoinTossEngine(CoinTosser(fixed_coins(*coins)))


@pytest.fixture
def repository() -> HexagramRepository:
    return HexagramRepository.get()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_sequencer(repository, clock):
    def factory(lines=None, *, repo=None, coins=None):
        if coins is not None:
            engine = CoinTossEngine(CoinTosser(fixed_coins(*coins)))
        elif lines is not None:
            engine = engine_for_lines(lines)
        else:
            engine = None
        return DivinationSequencer(repo if repo is not None else repository, engine=engine, clock=clock, session_id="test")

    return factory
