from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from itertools import product
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from .constants import LINE_COUNT
from .gua_model import validate_code


logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_FILE = Path(__file__).parent / "hexagrams.json"
ALL_CODES = frozenset("".join(bits) for bits in product("01", repeat=LINE_COUNT))


class KnowledgeBaseError(ValueError):
    """卦象知识库不完整或格式错误（启动时即失败）。"""


class HexagramNotFound(LookupError):
    def __init__(self, code: str) -> None:
        super().__init__(f"知识库中未找到卦码 {code} 对应的卦")
        self.code = code


@dataclass(frozen=True)
class HexagramRecord:
    code: str
    index: int
    name: str
    judgment: str
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "index": self.index,
            "name": self.name,
            "judgment": self.judgment,
            "explanation": self.explanation,
        }


class HexagramRepository:
    """六十四卦知识库（只读，按卦码精确查找）

    严格模式下要求恰好 64 个键且覆盖所有六位二进制码，否则在加载时抛出 KnowledgeBaseError。
    """

    _instances: Dict[str, "HexagramRepository"] = {}

    def __init__(self, records: Mapping[str, HexagramRecord], *, strict: bool = True) -> None:
        if strict:
            self.validate_codes(records.keys())
            self.validate_indices(record.index for record in records.values())
        self._records: Mapping[str, HexagramRecord] = MappingProxyType(dict(records))

    @classmethod
    def get(cls, path: str | Path | None = None) -> "HexagramRepository":
        resolved = Path(path or os.getenv("ZHOUYI_KNOWLEDGE_FILE") or DEFAULT_KNOWLEDGE_FILE)
        key = str(resolved.resolve())
        if key not in cls._instances:
            cls._instances[key] = cls.from_file(resolved)
        return cls._instances[key]

    @classmethod
    def from_file(cls, path: str | Path, *, strict: bool = True) -> "HexagramRepository":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        repository = cls.from_mapping(data, strict=strict)
        logger.info("已加载卦象知识库", extra={"path": str(path), "count": len(repository)})
        return repository

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]], *, strict: bool = True) -> "HexagramRepository":
        records: Dict[str, HexagramRecord] = {}
        for code, entry in data.items():
            try:
                validate_code(code)
            except ValueError as e:
                raise KnowledgeBaseError(str(e)) from e
            if not isinstance(entry, Mapping):
                raise KnowledgeBaseError(f"卦码 {code} 的条目必须是对象，实际为 {type(entry).__name__}")
            missing = [field for field in ("name", "judgment", "explanation") if not entry.get(field)]
            if missing:
                raise KnowledgeBaseError(f"卦码 {code} 缺少字段: {', '.join(missing)}")
            index = entry.get("index", 0)
            if isinstance(index, bool) or not isinstance(index, int):
                raise KnowledgeBaseError(f"卦码 {code} 的序号无效: {index!r}")
            records[code] = HexagramRecord(
                code=code,
                index=index,
                name=entry["name"],
                judgment=entry["judgment"],
                explanation=entry["explanation"],
            )
        return cls(records, strict=strict)

    @staticmethod
    def validate_codes(codes) -> None:
        present = set(codes)
        missing = sorted(ALL_CODES - present)
        extra = sorted(present - ALL_CODES)
        if missing or extra or len(present) != len(ALL_CODES):
            raise KnowledgeBaseError(
                f"卦象知识库必须恰好包含 64 个卦码，缺少: {missing or '无'}，多余: {extra or '无'}"
            )

    @staticmethod
    def validate_indices(indices) -> None:
        """严格模式下序号须为 1..64 且互不重复（文王卦序）。"""
        seen = list(indices)
        if sorted(seen) != list(range(1, len(ALL_CODES) + 1)):
            duplicated = sorted({i for i in seen if seen.count(i) > 1})
            invalid = sorted(i for i in set(seen) if not 1 <= i <= len(ALL_CODES))
            raise KnowledgeBaseError(
                f"卦序必须恰好为 1 到 64 且不重复，重复: {duplicated or '无'}，越界: {invalid or '无'}"
            )

    def lookup(self, code: str) -> HexagramRecord:
        record = self._records.get(code)
        if record is None:
            raise HexagramNotFound(code)
        return record

    def find(self, code: str) -> Optional[HexagramRecord]:
        return self._records.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self._records

    def __iter__(self) -> Iterator[HexagramRecord]:
        return iter(sorted(self._records.values(), key=lambda r: (r.index, r.code)))

    def __len__(self) -> int:
        return len(self._records)
