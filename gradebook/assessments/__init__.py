"""
Assessment attempts, grading and analytics.

``GradebookService`` is the entry point; the router exposes it over HTTP.
"""

from gradebook.assessments.service import GradebookService, build_service

__all__ = ['GradebookService', 'build_service']
