"""
FormRelay services: persistence, rendering and the submission workflow.
"""

from formrelay.services.email import SubmissionMailRenderer
from formrelay.services.submission_store import SubmissionStore
from formrelay.services.submission_workflow import (
    Failure,
    FullSuccess,
    PartialSuccess,
    SubmissionOutcome,
    SubmissionWorkflow,
)

__all__ = [
    "Failure",
    "FullSuccess",
    "PartialSuccess",
    "SubmissionMailRenderer",
    "SubmissionOutcome",
    "SubmissionStore",
    "SubmissionWorkflow",
]
