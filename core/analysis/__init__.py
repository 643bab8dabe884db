"""Commit analysis for the onboarder.

This module decides which commits are worth turning into tutorials.
"""

from core.analysis.classifier import CommitClassifier, file_extension, to_commit_record
from core.analysis.models import CommitAnalysis, CommitCategory

__all__ = [
    "CommitAnalysis",
    "CommitCategory",
    "CommitClassifier",
    "file_extension",
    "to_commit_record",
]
