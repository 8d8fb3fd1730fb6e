from __future__ import annotations

from typing import Iterator, List, Optional

from .coin import CoinTosser
from .constants import LINE_COUNT, VALID_LINE_VALUES
from .gua_types import YaoType


class CoinTossEngine:
    """三钱起卦引擎（可注入掷钱器）"""

    def __init__(self, tosser: CoinTosser | None = None) -> None:
        self.tosser = tosser or CoinTosser()

    def one_line(self) -> int:
        value = self.tosser.draw_line()
        assert value in VALID_LINE_VALUES, f"爻值不合法: {value}"
        return value

    def six_lines(self) -> List[int]:
        return [self.one_line() for _ in range(LINE_COUNT)]

    def six_yaos(self) -> List[YaoType]:
        return [YaoType(value) for value in self.six_lines()]

    def accumulator(self) -> "LineAccumulator":
        return LineAccumulator(self)


class LineAccumulator:
    """逐爻累积：每次 `advance()` 掷一次钱，自下而上，满六爻后不再掷。

    不可重启；耗尽后 `advance()` 返回 None。
    """

    def __init__(self, engine: CoinTossEngine | None = None, count: int = LINE_COUNT) -> None:
        if count <= 0:
            raise ValueError("爻数必须大于0")
        self.engine = engine or CoinTossEngine()
        self.count = count
        self._values: List[int] = []
        self._draws = self._generate()

    def _generate(self) -> Iterator[int]:
        while len(self._values) < self.count:
            value = self.engine.one_line()
            self._values.append(value)
            yield value

    def advance(self) -> Optional[int]:
        return next(self._draws, None)

    @property
    def values(self) -> tuple[int, ...]:
        return tuple(self._values)

    @property
    def exhausted(self) -> bool:
        return len(self._values) >= self.count

    def __iter__(self) -> Iterator[int]:
        return self._draws

    def __len__(self) -> int:
        return len(self._values)
