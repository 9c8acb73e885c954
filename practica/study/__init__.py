"""
Study Module - retention model for bar sections.

Provides:
- Tau computation through the layered retention model
- Due dates from tau and the target retention of a difficulty
- Feedback translation (difficulty score, repetitions, outcome)
- Adaptive sources: memory stability and personal calibration
"""

from practica.study.feedback import FeedbackNumbers, feedback_to_numbers
from practica.study.retention_engine import (
    RetentionEngine,
    SchedulePlan,
    TauBreakdown,
    compute_tau,
    compute_tau_breakdown,
    due_date_from_tau,
    target_retention_for,
)

__all__ = [
    "FeedbackNumbers",
    "RetentionEngine",
    "SchedulePlan",
    "TauBreakdown",
    "compute_tau",
    "compute_tau_breakdown",
    "due_date_from_tau",
    "feedback_to_numbers",
    "target_retention_for",
]
