"""
Central API router and utilities for the gradebook.

This module provides:
- A central router that the gradebook route modules register with
- The standard success/error response envelope
- Exception handlers that render engine failures and request validation errors
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gradebook.common.errors import GradebookError, error_response, http_status_for, log_error
from gradebook.common.logger import app_logger

logger = app_logger.getChild("api")

# Create main API router
main_router = APIRouter()

# Dictionary to track registered route modules
registered_modules: Dict[str, APIRouter] = {}


def register_module(name: str, router: APIRouter) -> None:
    """
    Register a route module with the main API router.

    Args:
        name: Name of the module
        router: FastAPI router of the module
    """
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, skipping")
        return

    main_router.include_router(router)
    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


async def gradebook_exception_handler(request: Request, exc: GradebookError) -> JSONResponse:
    """Render an engine failure with the status its error code maps to."""
    status_code = http_status_for(exc)
    if status_code >= 500:
        log_error(exc, context={"path": request.url.path}, target=logger)
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code.value}")
    return JSONResponse(status_code=status_code, content=error_response(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", details=error_details, code="validation_error")
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GradebookError, gradebook_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


# Standard API response model
class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            message: Success message

        Returns:
            Response dictionary
        """
        return {
            "status": "success",
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response: Dict[str, Any] = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response
