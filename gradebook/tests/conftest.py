"""
Shared fixtures for the gradebook tests.
"""

import pytest

from gradebook.assessments.service import GradebookService
from gradebook.tests.factories import INSTRUCTOR, OTHER_LEARNER


@pytest.fixture
def service():
    """A service over fresh in-memory repositories."""
    return GradebookService.in_memory()


@pytest.fixture
def instructor():
    return INSTRUCTOR


@pytest.fixture
def other_learner():
    return OTHER_LEARNER
