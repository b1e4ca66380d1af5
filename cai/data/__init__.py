"""
Data Module

Loading of prompt inputs: piped stdin, file attachments, JSON schemas
and git logs.
"""

from cai.data.loader import (
    attachment_kind,
    combine_prompt,
    guess_mime_type,
    load_attachment,
    load_attachments,
    parse_json_schema,
    read_git_log,
    read_piped_input,
)

__all__ = [
    "read_piped_input",
    "combine_prompt",
    "guess_mime_type",
    "attachment_kind",
    "load_attachment",
    "load_attachments",
    "parse_json_schema",
    "read_git_log",
]
