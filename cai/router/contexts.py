"""
Prompt Context Definitions

This module defines the prompt contexts selected by a CLI command word.
A context fixes the system prompt and, optionally, the model a prompt is
sent to; the dispatch itself is unchanged.

Contexts:
    - value: Answer with the bare value only (default model)
    - <lang>: Answer as a developer of that language (bash, py, rs, ...)
    - ocr: Extract all text from an image (vision model)
    - changelog: Summarize a git log into a markdown changelog

Language contexts go to Claude Sonnet; ocr and changelog go to GPT-4o.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptContext:
    """
    A named prompt context.

    Attributes:
        name: Command word that selects the context (e.g. 'py')
        description: Help text for the command
        system_prompt: Instructions placed in the provider's system slot
        model_token: Alias token to dispatch to (None = registry default)
    """

    name: str
    description: str
    system_prompt: str
    model_token: str | None = None


LANGUAGE_CONTEXT_MODEL = "anthropic/sonnet"
OCR_MODEL = "openai/gpt-4o"
CHANGELOG_MODEL = "openai/gpt-4o"

# Command word -> language name
LANGUAGES: dict[str, str] = {
    "bash": "Bash",
    "c": "C",
    "cpp": "C++",
    "cs": "C#",
    "elm": "Elm",
    "fish": "Fish",
    "fs": "F#",
    "gd": "Godot and GDScript",
    "gl": "Gleam",
    "go": "Go",
    "hs": "Haskell",
    "java": "Java",
    "js": "JavaScript",
    "kt": "Kotlin",
    "ly": "LilyPond",
    "lua": "Lua",
    "oc": "OCaml",
    "php": "PHP",
    "pg": "Postgres",
    "ps": "PureScript",
    "py": "Python",
    "rb": "Ruby",
    "rs": "Rust",
    "sql": "SQLite",
    "sw": "Swift",
    "ts": "TypeScript",
    "ty": "Typst",
    "wl": "Wolfram Language and Mathematica",
    "zig": "Zig",
}

VALUE_SYSTEM_PROMPT = (
    "Answer with the requested value only.\n"
    "Do not explain, do not repeat the question and do not add any formatting.\n"
    "If the value has a unit, include the unit."
)

OCR_PROMPT = "Extract and return all text from this image."

CHANGELOG_PROMPT = (
    "Summarize the following git commit log into a concise markdown changelog.\n"
    "Only include user-facing changes (i.e. no code refactorings or similar).\n"
    "Use the tags to group the changes, and if there are no tags use the dates.\n"
    "Include the date and the tag in the header.\n"
    "Don't sub-categorize the changes, just list them.\n"
    "Insert a blank line after each header and sub-header."
)


def language_system_prompt(language: str) -> str:
    """System prompt for answering in the context of a programming language."""
    return (
        f"You're a professional {language} developer.\n"
        f"Answer the following question in the context of {language}.\n"
        "Keep your answer concise and to the point."
    )


def create_contexts() -> dict[str, PromptContext]:
    """
    Create every prompt context that takes free-form prompt text.

    Returns:
        Mapping of command word to PromptContext: 'value' plus one
        entry per language.
    """
    contexts = {
        "value": PromptContext(
            name="value",
            description="Answer with the bare value only",
            system_prompt=VALUE_SYSTEM_PROMPT,
        ),
    }
    for name, language in LANGUAGES.items():
        contexts[name] = PromptContext(
            name=name,
            description=f"Use {language} development as the prompt context",
            system_prompt=language_system_prompt(language),
            model_token=LANGUAGE_CONTEXT_MODEL,
        )
    return contexts


def get_context_names() -> list[str]:
    return list(create_contexts())


def changelog_prompt(git_log: str) -> str:
    """Full changelog prompt with the commit log appended."""
    return f"{CHANGELOG_PROMPT}\n\n{git_log}"
