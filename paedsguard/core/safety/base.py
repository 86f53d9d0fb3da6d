"""
Safety Guardrails: Base Types

Data contracts produced by every guardrail check. A verdict carries exactly
one severity; only warnings carry an override descriptor.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """
    Verdict severity, most restrictive first.

    HARD_BLOCK – administration must not proceed
    WARNING    – may proceed only with an explicit override
    CAUTION    – informational, no override needed
    SAFE       – nothing found
    """
    HARD_BLOCK = "hard_block"
    WARNING    = "warning"
    CAUTION    = "caution"
    SAFE       = "safe"


@dataclass(frozen=True)
class OverrideDescriptor:
    """What the clinician must do to proceed past a warning."""
    allowed: bool
    requires_justification: bool
    confirmation_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "requires_justification": self.requires_justification,
            "confirmation_text": self.confirmation_text,
        }


@dataclass(frozen=True)
class SafetyVerdict:
    """Outcome of one guardrail check, or of a full evaluation."""
    severity: Severity
    message: str
    rationale: str
    override: Optional[OverrideDescriptor] = None
    check: Optional[str] = None   # name of the check that produced it

    def __post_init__(self):
        if self.severity == Severity.WARNING:
            if self.override is None:
                raise ValueError("warning verdicts must carry an override descriptor")
        elif self.override is not None:
            raise ValueError(f"{self.severity.value} verdicts cannot carry an override descriptor")

    @property
    def allowed(self) -> bool:
        return self.severity != Severity.HARD_BLOCK

    # ── Constructors ──────────────────────────────────────────────────────
    @classmethod
    def safe(cls, message: str, rationale: str, check: Optional[str] = None) -> "SafetyVerdict":
        return cls(Severity.SAFE, message, rationale, check=check)

    @classmethod
    def caution(cls, message: str, rationale: str, check: Optional[str] = None) -> "SafetyVerdict":
        return cls(Severity.CAUTION, message, rationale, check=check)

    @classmethod
    def hard_block(cls, message: str, rationale: str, check: Optional[str] = None) -> "SafetyVerdict":
        return cls(Severity.HARD_BLOCK, message, rationale, check=check)

    @classmethod
    def warning(
        cls,
        message: str,
        rationale: str,
        confirmation_text: str,
        requires_justification: bool = True,
        check: Optional[str] = None,
    ) -> "SafetyVerdict":
        return cls(
            Severity.WARNING,
            message,
            rationale,
            override=OverrideDescriptor(
                allowed=True,
                requires_justification=requires_justification,
                confirmation_text=confirmation_text,
            ),
            check=check,
        )

    # ── Serialisation ─────────────────────────────────────────────────────
    def to_dict(self) -> Dict[str, Any]:
        data = {
            "allowed": self.allowed,
            "severity": self.severity.value,
            "message": self.message,
            "rationale": self.rationale,
            "check": self.check,
        }
        if self.override is not None:
            data["override"] = self.override.to_dict()
        return data
