from __future__ import annotations

from typing import FrozenSet, List, Sequence, Tuple, Union

from .constants import LINE_COUNT, VALID_LINE_VALUES
from .gua_types import YaoType


LineLike = Union[int, YaoType]


def encode_lines(lines: Sequence[LineLike]) -> Tuple[str, FrozenSet[int]]:
    """六爻 -> (二进制卦码, 动爻位置)。

    卦码自下而上：奇数（阳）记 "1"，偶数（阴）记 "0"；值为 6 或 9 的爻为动爻。
    """
    values = _line_values(lines)
    code = "".join("1" if value % 2 else "0" for value in values)
    moving = frozenset(k for k, value in enumerate(values) if value in (6, 9))
    return code, moving


def _line_value(line: object) -> int:
    if isinstance(line, YaoType):
        return line.value
    # bool 是 int 的子类，但 True/False 不是爻值
    if isinstance(line, bool) or not isinstance(line, int):
        raise ValueError(f"无效的爻值: {line!r}")
    return line


def _line_values(lines: Sequence[LineLike]) -> List[int]:
    if len(lines) != LINE_COUNT:
        raise ValueError(f"卦必须有六爻，实际为 {len(lines)} 爻")
    values = [_line_value(line) for line in lines]
    for value in values:
        if value not in VALID_LINE_VALUES:
            raise ValueError(f"无效的爻值: {value}")
    return values


class Gua:
    """卦对象（值对象风格）"""

    def __init__(self, yaos: Sequence[LineLike]):
        self.code, self.moving = encode_lines(yaos)
        self.yaos: List[YaoType] = [YaoType(value) for value in _line_values(yaos)]

    @property
    def lines(self) -> Tuple[int, ...]:
        return tuple(yao.value for yao in self.yaos)

    @property
    def has_moving(self) -> bool:
        return bool(self.moving)

    def changed(self) -> "Gua":
        """之卦：所有动爻变为对立之爻。"""
        return Gua([yao.changed() for yao in self.yaos])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Gua):
            return NotImplemented
        return self.yaos == other.yaos

    def __hash__(self) -> int:
        return hash(tuple(self.yaos))

    def __str__(self) -> str:
        return f"Gua(code='{self.code}', moving={sorted(self.moving)})"

    def __repr__(self) -> str:
        return self.__str__()


def validate_code(code: str) -> str:
    if not isinstance(code, str) or len(code) != LINE_COUNT or set(code) - {"0", "1"}:
        raise ValueError(f"无效的卦码: {code!r}")
    return code
