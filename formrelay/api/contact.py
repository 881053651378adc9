"""Contact form API endpoints."""

import json
import logging
from typing import Annotated, Any

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from formrelay.api.deps import get_submission_workflow
from formrelay.core.config import settings
from formrelay.core.exceptions import ContactFormError, FieldError, ValidationError
from formrelay.core.rate_limit import RateLimitContact
from formrelay.schemas.contact import ContactFormRequest, ContactFormResponse
from formrelay.services.submission_workflow import (
    FullSuccess,
    PartialSuccess,
    SubmissionOutcome,
    SubmissionWorkflow,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["contact"])

SUCCESS_MESSAGE = "Message sent and stored successfully"
EMAIL_FAILED_MESSAGE = (
    "Your message was stored successfully, but email notification failed. "
    "We will contact you soon."
)
FAILURE_MESSAGE = "Failed to process your request"

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


# =============================================================================
# Request Parsing
# =============================================================================


def _field_errors(exc: pydantic.ValidationError) -> list[FieldError]:
    errors = []
    seen = set()
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "body"
        if field in seen:
            continue
        seen.add(field)
        errors.append(FieldError(field=field, message=error["msg"]))
    return errors


async def read_contact_payload(request: Request) -> ContactFormRequest:
    """
    Parse and validate a JSON or form-encoded contact form body.

    Raises:
        HTTPException: 413 when the body is over the size limit, 415 for
            other content types.
        ValidationError: Malformed body or invalid fields.
    """
    declared_length = request.headers.get("content-length")
    if declared_length and declared_length.isdigit() and int(declared_length) > settings.max_body_bytes:
        raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Request body too large")

    body = await request.body()
    if len(body) > settings.max_body_bytes:
        raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Request body too large")

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    data: Any
    if content_type == "application/json":
        try:
            data = json.loads(body or b"{}")
        except ValueError:
            raise ValidationError([FieldError(field="body", message="Malformed JSON body")])
    elif content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        data = {key: value for key, value in form.items()}
    else:
        raise HTTPException(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "Content-Type must be application/json or form-encoded",
        )

    if not isinstance(data, dict):
        raise ValidationError([FieldError(field="body", message="Expected a JSON object")])

    try:
        return ContactFormRequest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_field_errors(e))


# =============================================================================
# Responses
# =============================================================================


def error_response(error: ContactFormError) -> JSONResponse:
    """Failure body for an error that happened before anything was persisted."""
    if isinstance(error, ValidationError):
        body = ContactFormResponse(
            success=False,
            message=error.public_message,
            errors=[e.to_dict() for e in error.errors],
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(exclude_none=True),
        )

    detail = error.message
    if settings.debug and error.__cause__ is not None:
        detail = f"{detail}: {error.__cause__}"

    body = ContactFormResponse(success=False, message=FAILURE_MESSAGE, error=detail)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(exclude_none=True),
    )


def outcome_response(outcome: SubmissionOutcome) -> JSONResponse:
    """Map a workflow outcome onto the HTTP response contract."""
    if isinstance(outcome, FullSuccess):
        body = ContactFormResponse(
            success=True,
            message=SUCCESS_MESSAGE,
            formId=str(outcome.submission.id),
        )
    elif isinstance(outcome, PartialSuccess):
        body = ContactFormResponse(
            success=True,
            message=EMAIL_FAILED_MESSAGE,
            formId=str(outcome.submission.id),
            emailError=True,
        )
    else:
        return error_response(outcome.cause)

    return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(exclude_none=True))


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/contact",
    response_model=ContactFormResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ContactFormResponse, "description": "Invalid submission"},
        429: {"description": "Too many submissions"},
        500: {"model": ContactFormResponse, "description": "Submission could not be stored"},
    },
)
async def submit_contact_form(
    _: RateLimitContact,
    payload: Annotated[ContactFormRequest, Depends(read_contact_payload)],
    workflow: Annotated[SubmissionWorkflow, Depends(get_submission_workflow)],
) -> JSONResponse:
    """
    Submit a contact form.

    The submission is stored first. The administrator notice and the
    submitter acknowledgment are then sent; if either fails the request
    still succeeds and the response carries ``emailError``.
    """
    logger.info(f"Contact form received from {payload.email}")

    outcome = await workflow.submit(payload)
    return outcome_response(outcome)
