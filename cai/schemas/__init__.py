"""
Schemas module: request and result shapes shared across the pipeline.
"""

from cai.schemas.prompt import (
    TRANSIENT_ERRORS,
    Attachment,
    AttachmentKind,
    ErrorKind,
    FanoutResult,
    Failure,
    OutputMode,
    PromptRequest,
    ProviderCallResult,
    Success,
    UsageError,
    split_json_schema,
)

__all__ = [
    # Enumerations
    "OutputMode",
    "AttachmentKind",
    "ErrorKind",
    "TRANSIENT_ERRORS",
    # Requests
    "Attachment",
    "PromptRequest",
    # Results
    "Success",
    "Failure",
    "ProviderCallResult",
    "FanoutResult",
    # Errors
    "UsageError",
    # Helpers
    "split_json_schema",
]
