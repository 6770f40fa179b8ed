"""
Central API router and utilities for the exam engine.

This module provides:
- A central router that module routers register with
- The standard response envelope
- Exception handlers that turn engine errors into that envelope
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from exam_engine.common.exceptions import AssessmentError, ErrorKind

# Configure logging
logger = logging.getLogger(__name__)

# Create main API router
main_router = APIRouter()

# Dictionary to track registered modules
registered_modules: Dict[str, APIRouter] = {}


def register_module(name: str, router: APIRouter) -> None:
    """
    Register a module router with the main API router.

    Args:
        name: Name of the module, used as path prefix and tag
        router: FastAPI router for the module
    """
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, skipping")
        return

    main_router.include_router(router, prefix=f"/{name}", tags=[name])
    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


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
        return {
            "status": "error",
            "message": message,
            "code": code,
            "details": details
        }


async def assessment_exception_handler(request: Request, exc: AssessmentError) -> JSONResponse:
    """Expected business outcomes: stable code, actionable message."""
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse.error(exc.message, exc.details, exc.kind.value)
    )


# Common validation error handler
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
        content=APIResponse.error("Validation error", error_details, ErrorKind.VALIDATION_ERROR.value)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Infrastructure failures never leak internals to the caller."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse.error("Internal server error", code="internal_error")
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AssessmentError, assessment_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
