"""
Common infrastructure shared across the gradebook engine.

Key components:
1. Logging - Centralized logging configuration
2. Error Handling - Typed engine failures and API error bodies
3. Auth - Caller identity and role checks
"""

from gradebook.common.logger import app_logger
from gradebook.common.errors import GradebookError, ErrorCode, error_response

__all__ = [
    'app_logger',
    'GradebookError',
    'ErrorCode',
    'error_response',
]
