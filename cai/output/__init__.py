"""
Output module: rendering of fan-out results and exit codes.
"""

from cai.output.formatter import (
    EXIT_ALL_FAILED,
    EXIT_INTERRUPTED,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
    EXIT_USAGE,
    apply_json_schema,
    exit_code,
    format_header,
    render,
    validate_json,
)

__all__ = [
    "render",
    "apply_json_schema",
    "validate_json",
    "format_header",
    "exit_code",
    "EXIT_SUCCESS",
    "EXIT_ALL_FAILED",
    "EXIT_USAGE",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_INTERRUPTED",
]
