"""
Gradebook Assessment Engine

This package implements the attempt and grading engine of a learning
platform:
1. A question bank of ordered, typed questions per assessment
2. Attempt lifecycle management with attempt-count limits
3. Response recording while an attempt is in progress
4. Automatic grading of objective questions and a manual grading queue
5. Rubric evaluation for subjective questions
6. Analytics over finalized attempts
"""

__version__ = "0.1.0"
