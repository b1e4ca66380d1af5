"""
Prompt Input Loader

Utilities for collecting everything a PromptRequest is built from,
besides the prompt words themselves:

- Piped standard input: appended after the explicit prompt text
- Attachments: files read as bytes, kind derived from the MIME type
- JSON schemas: inline JSON or @path to a JSON file
- Git logs: commit subjects for the changelog command

All problems with user input are raised as UsageError, so the CLI can
report them and exit before anything is dispatched.
"""

import json
import logging
import mimetypes
import subprocess
import sys
from pathlib import Path
from typing import Any, TextIO

import jsonschema

from cai.schemas.prompt import Attachment, AttachmentKind, UsageError, split_json_schema


logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════


# Extensions the platform MIME table may not know about
EXTRA_MIME_TYPES: dict[str, str] = {
    ".md": "text/markdown",
    ".toml": "text/plain",
    ".rs": "text/plain",
    ".ts": "text/plain",
    ".webp": "image/webp",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
}

# application/* types that are really text
TEXT_APPLICATION_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/javascript",
        "application/x-sh",
        "application/x-yaml",
        "application/yaml",
        "application/toml",
    }
)

PIPED_INPUT_SEPARATOR = "\n\n"


# ═══════════════════════════════════════════════════════════════════════════════
# STANDARD INPUT
# ═══════════════════════════════════════════════════════════════════════════════


def read_piped_input(stream: TextIO | None = None) -> str | None:
    """
    Read piped standard input, if there is any.

    Args:
        stream: Input stream (default: sys.stdin).

    Returns:
        The piped text, or None when the stream is an interactive terminal,
        closed, or empty.
    """
    stream = stream if stream is not None else sys.stdin
    if stream is None or stream.closed or stream.isatty():
        return None

    content = stream.read()
    if not content.strip():
        return None

    logger.info(f"Read {len(content)} characters from standard input")
    return content


def combine_prompt(text: str, piped: str | None) -> str:
    """Append piped content after the explicit prompt text."""
    if not piped:
        return text
    if not text.strip():
        return piped
    return f"{text}{PIPED_INPUT_SEPARATOR}{piped}"


# ═══════════════════════════════════════════════════════════════════════════════
# ATTACHMENTS
# ═══════════════════════════════════════════════════════════════════════════════


def guess_mime_type(path: Path) -> str:
    extra = EXTRA_MIME_TYPES.get(path.suffix.lower())
    if extra:
        return extra
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "application/octet-stream"


def attachment_kind(mime_type: str) -> AttachmentKind:
    """
    Classify a MIME type as image, audio or text.

    Anything that is neither image nor audio is sent as text.
    """
    major = mime_type.split("/", 1)[0]
    if major == "image":
        return AttachmentKind.IMAGE
    if major == "audio":
        return AttachmentKind.AUDIO
    return AttachmentKind.TEXT


def load_attachment(path: str | Path) -> Attachment:
    """
    Read a file into an Attachment.

    Raises:
        UsageError: If the file does not exist or cannot be read.
    """
    path = Path(path)

    if not path.is_file():
        raise UsageError(f"Attachment not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise UsageError(f"Cannot read attachment {path}: {e}") from e

    mime_type = guess_mime_type(path)
    kind = attachment_kind(mime_type)
    logger.debug(f"Loaded {kind.value} attachment {path} ({mime_type}, {len(data)} bytes)")

    return Attachment(kind=kind, data=data, mime_type=mime_type, name=path.name)


def load_attachments(paths: list[str] | None) -> tuple[Attachment, ...]:
    """Load attachments in the order they were given."""
    return tuple(load_attachment(p) for p in paths or [])


# ═══════════════════════════════════════════════════════════════════════════════
# JSON SCHEMA
# ═══════════════════════════════════════════════════════════════════════════════


def parse_json_schema(value: str) -> dict[str, Any]:
    """
    Parse the --json-schema option.

    Args:
        value: A JSON document, or '@' followed by the path of a JSON file.

    Returns:
        The schema document as a dict.

    Raises:
        UsageError: If the file is missing, the document is not a JSON object,
            or the schema itself is invalid.
    """
    if value.startswith("@"):
        path = Path(value[1:])
        try:
            value = path.read_text(encoding="utf-8")
        except OSError as e:
            raise UsageError(f"Cannot read JSON schema file {path}: {e}") from e

    try:
        schema = json.loads(value)
    except json.JSONDecodeError as e:
        raise UsageError(f"JSON schema is not valid JSON: {e}") from e

    if not isinstance(schema, dict):
        raise UsageError(
            f"JSON schema must be a JSON object, got {type(schema).__name__}"
        )

    _, bare_schema = split_json_schema(schema)
    try:
        jsonschema.validators.validator_for(bare_schema).check_schema(bare_schema)
    except jsonschema.SchemaError as e:
        raise UsageError(f"JSON schema is invalid: {e.message}") from e
    return schema


# ═══════════════════════════════════════════════════════════════════════════════
# GIT LOG
# ═══════════════════════════════════════════════════════════════════════════════


def read_git_log(commit: str, cwd: str | Path | None = None) -> str:
    """
    Read the commit log from `commit` (exclusive) up to HEAD.

    Each line has the form '<date> - <subject> (<refs>)'.

    Raises:
        UsageError: If git is missing, the commit is unknown, or the log is empty.
    """
    command = [
        "git",
        "log",
        "--date=short",
        "--pretty=format:%cd - %s%d",
        f"{commit}..HEAD",
    ]
    try:
        completed = subprocess.run(
            command, cwd=cwd, capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise UsageError(f"Failed to execute git: {e}") from e

    if completed.returncode != 0:
        raise UsageError(f"git log failed: {completed.stderr.strip()}")

    if not completed.stdout.strip():
        raise UsageError(f"No commits found after {commit}")

    return completed.stdout
