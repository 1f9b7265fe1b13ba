from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ComplianceFramework(str, Enum):
    """
    Closed, ordered set of compliance frameworks: commercial < moderate < high.
    """
    COMMERCIAL = 'commercial'
    MODERATE = 'moderate'
    HIGH = 'high'

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def is_at_least(self, other: 'ComplianceFramework') -> bool:
        return self.rank >= ComplianceFramework.parse(other).rank

    @classmethod
    def parse(cls, value: Any) -> 'ComplianceFramework':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            key = FRAMEWORK_ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        raise ValueError(
            f"Unknown compliance framework {value!r}; expected one of "
            f"{[m.value for m in cls] + sorted(FRAMEWORK_ALIASES)}"
        )


_RANKS: Dict[ComplianceFramework, int] = {
    ComplianceFramework.COMMERCIAL: 0,
    ComplianceFramework.MODERATE: 1,
    ComplianceFramework.HIGH: 2,
}

FRAMEWORK_ALIASES: Dict[str, str] = {
    'fedramp-moderate': 'moderate',
    'fedramp-high': 'high',
}
