"""
Assessment module.

Assessment definitions, the attempt ledger, eligibility rules, grading,
randomization and the engine that orchestrates them.
"""

from exam_engine.assessments.models import (
    AssessmentDefinition,
    Attempt,
    AttemptAnswer,
    AttemptStatus,
    RevealPolicy
)
from exam_engine.assessments.service import AssessmentEngine, create_assessment_engine

__all__ = [
    'AssessmentDefinition',
    'Attempt',
    'AttemptAnswer',
    'AttemptStatus',
    'RevealPolicy',
    'AssessmentEngine',
    'create_assessment_engine',
]
