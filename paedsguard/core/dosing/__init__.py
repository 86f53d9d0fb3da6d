"""
Dosing Calculator

Usage:
    from paedsguard.core.dosing import compute_dose

    result = compute_dose("epinephrine_iv", 20)   # 0.2 mg, not clamped
"""
from .calculator import DoseResult, compute_dose

__all__ = [
    "DoseResult",
    "compute_dose",
]
