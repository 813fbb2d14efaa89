__all__ = [
    "AssessmentClient",
    "AssessmentEngine",
    "HTTPAssessmentEngine",
]

from .client import AssessmentClient
from .http import HTTPAssessmentEngine
from .protocol import AssessmentEngine
