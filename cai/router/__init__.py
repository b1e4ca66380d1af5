"""
Router module: prompt contexts selected by a command word.

This module contains:
- contexts.py: value, language, ocr and changelog contexts

Public API:
- PromptContext: System prompt and target model of a context
- create_contexts(): Factory for all free-form prompt contexts
- get_context_names(): Command words that select a context
- LANGUAGES: Language command word -> language name
"""

from cai.router.contexts import (
    CHANGELOG_MODEL,
    LANGUAGE_CONTEXT_MODEL,
    LANGUAGES,
    OCR_MODEL,
    OCR_PROMPT,
    PromptContext,
    changelog_prompt,
    create_contexts,
    get_context_names,
    language_system_prompt,
)

__all__ = [
    "PromptContext",
    "create_contexts",
    "get_context_names",
    "language_system_prompt",
    "changelog_prompt",
    "LANGUAGES",
    "LANGUAGE_CONTEXT_MODEL",
    "OCR_MODEL",
    "OCR_PROMPT",
    "CHANGELOG_MODEL",
]
