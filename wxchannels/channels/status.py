"""探测/审计结果的公共部分"""

import time
from typing import List, Optional

from pydantic import BaseModel, Field


class ProbeResult(BaseModel):
    connected: bool = False
    latency_ms: int = 0
    error: Optional[str] = None


class AuditResult(BaseModel):
    configured: bool = False
    reachable: bool = False
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    info: List[str] = Field(default_factory=list)

    def add_error(self, message: str):
        if message not in self.errors:
            self.errors.append(message)


def elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def format_audit_summary(audit: AuditResult, credential_line: str) -> str:
    """
    生成审计报告文本

    Args:
        audit: 审计结果
        credential_line: 渠道特定的第三行,如 "Logged In: Yes"
    """
    lines = [
        f"Configured: {'Yes' if audit.configured else 'No'}",
        f"Reachable: {'Yes' if audit.reachable else 'No'}",
        credential_line,
    ]
    for title, items in (("Errors", audit.errors), ("Warnings", audit.warnings), ("Info", audit.info)):
        if items:
            lines.append(f"\n{title}:")
            lines.extend(f"  - {item}" for item in items)
    return "\n".join(lines)
