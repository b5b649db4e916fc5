"""
Insights package.

Public API:
- PreferenceInsight, AttributeTally, PreferenceBook
"""
from .models import PreferenceInsight, AttributeTally, PreferenceBook

__all__ = [
    "PreferenceInsight",
    "AttributeTally",
    "PreferenceBook",
]
