"""
目标标识规范化

目标格式为 [<prefix>:]<id>,前缀因渠道而异。规范化是幂等的:
normalize(normalize(x)) == normalize(x)。
"""

import re
from typing import Any, Iterable, List, Sequence

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_MIN_ID_LENGTH = 6


class TargetNormalizer:
    """按渠道前缀配置的目标规范化器"""

    def __init__(self, prefixes: Sequence[str]):
        self.prefixes = tuple(prefixes)
        self._lower_prefixes = tuple(p.lower() for p in self.prefixes)

    def _matched_prefix(self, value: str, case_sensitive: bool = True):
        probe = value if case_sensitive else value.lower()
        candidates = self.prefixes if case_sensitive else self._lower_prefixes
        for prefix in candidates:
            if probe.startswith(prefix + ":"):
                return prefix
        return None

    def normalize(self, raw: str) -> str:
        """
        去掉首尾空白和已知渠道前缀

        反复去掉已知渠道前缀,其余段保持原样(wecom:user:alice -> user:alice);
        去掉前缀后为空时保留原值。
        """
        value = str(raw).strip()
        while True:
            prefix = self._matched_prefix(value)
            if prefix is None:
                return value
            rest = value[len(prefix) + 1:].strip()
            if not rest:
                return value
            value = rest

    def looks_like_id(self, raw: str) -> bool:
        """启发式判断是否像一个平台ID"""
        value = str(raw).strip()
        if self._matched_prefix(value) is not None:
            return True
        return len(value) >= _MIN_ID_LENGTH and bool(_ID_PATTERN.match(value))

    def strip_prefix(self, raw: str) -> str:
        """大小写不敏感地去掉一个已知前缀"""
        value = str(raw).strip()
        prefix = self._matched_prefix(value, case_sensitive=False)
        if prefix is None:
            return value
        return value[len(prefix) + 1:].strip()

    def format_allow_from(self, entries: Iterable[Any]) -> List[str]:
        """allowFrom 规范化: 转字符串、去空白、去前缀、小写,丢弃空项"""
        formatted = []
        for entry in entries or []:
            if entry is None:
                continue
            value = self.strip_prefix(str(entry).strip()).lower()
            if value:
                formatted.append(value)
        return formatted


__all__ = ["TargetNormalizer"]
