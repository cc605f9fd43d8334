"""
Study orchestration.

Components:
- StudyService: session lifecycle, grading and pre-cache selection
- StudyContext: explicit state owned by the service
"""

from .study_service import StudyContext, StudyService

__all__ = ["StudyContext", "StudyService"]
