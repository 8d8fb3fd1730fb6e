from __future__ import annotations

from enum import Enum


class YaoType(Enum):
    """爻类型（三枚铜钱之和）"""

    Lao_Yin = 6  # 老阴，动爻
    Shao_Yang = 7  # 少阳
    Shao_Yin = 8  # 少阴
    Lao_Yang = 9  # 老阳，动爻

    @property
    def is_moving(self) -> bool:
        return self in (YaoType.Lao_Yin, YaoType.Lao_Yang)

    def changed(self) -> "YaoType":
        """动爻变为其对立的静爻，静爻不变。"""
        if self is YaoType.Lao_Yin:
            return YaoType.Shao_Yang
        if self is YaoType.Lao_Yang:
            return YaoType.Shao_Yin
        return self
