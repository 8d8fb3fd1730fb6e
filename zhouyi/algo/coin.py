from __future__ import annotations

import random
from typing import Callable, Dict, Sequence

import numpy as np

from .constants import COIN_COUNT, COIN_HEADS, COIN_TAILS, VALID_LINE_VALUES


CoinFlip = Callable[[], int]


def flip_coin() -> int:
    """掷一枚铜钱：背为 3，字为 2。"""
    return random.randint(COIN_TAILS, COIN_HEADS)


def toss_coins(coin: CoinFlip = flip_coin) -> tuple[int, int, int]:
    return tuple(coin() for _ in range(COIN_COUNT))  # type: ignore[return-value]


def draw_line(coin: CoinFlip = flip_coin) -> int:
    """三枚铜钱之和即一爻：6、7、8、9 的概率为 1/8、3/8、3/8、1/8。"""
    value = sum(toss_coins(coin))
    assert value in VALID_LINE_VALUES, f"非法的爻值: {value}"
    return value


class CoinTosser:
    """掷钱器，`coin` 仅作为测试时固定硬币结果的注入点。"""

    def __init__(self, coin: CoinFlip | None = None) -> None:
        self.coin = coin or flip_coin

    def draw_line(self) -> int:
        return draw_line(self.coin)


def sample_line_values(n: int, seed: int | None = None) -> np.ndarray:
    """一次性抽取 n 个爻值，用于统计分布。"""
    if n < 0:
        raise ValueError("抽样数量必须非负")
    rng = np.random.default_rng(seed)
    coins = rng.integers(COIN_TAILS, COIN_HEADS + 1, size=(n, COIN_COUNT))
    return coins.sum(axis=1)


def line_distribution(values: Sequence[int] | np.ndarray) -> Dict[int, float]:
    """返回 6、7、8、9 各自的经验频率。"""
    arr = np.asarray(values)
    if arr.size == 0:
        return {value: 0.0 for value in VALID_LINE_VALUES}
    return {value: float(np.count_nonzero(arr == value)) / arr.size for value in VALID_LINE_VALUES}
