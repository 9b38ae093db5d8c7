from .base import SubmissionSource
from .atcoder import AtCoderProblemsSource

__all__ = [
    "AtCoderProblemsSource",
    "SubmissionSource",
]
