"""
cai - The fastest CLI tool for prompting LLMs

Sends a prompt to one or many LLM providers and prints the answers.

The first prompt word may select what the prompt is sent to:
1. A global shortcut ('gp', 'so', 'fl', ...)
2. A provider, optionally followed by a model ('openai gpt-4.1 ...')
3. 'all': every provider's default model
4. A context command ('value', 'py', 'rs', ..., 'ocr', 'changelog')
Anything else is part of the prompt and goes to the default model.

Usage:
    cai what is a monad                      Default model
    cai gp what is a monad                   Shortcut
    cai anthropic opus what is a monad       Provider + model
    cai all what is a monad                  Every provider's default
    cai -m gp -m so -m fl what is a monad    Explicit fan-out
    cai value capital of Australia           Bare value only
    cai py how to reverse a list             Python context
    cai ocr receipt.png                      Text from an image
    cai changelog v1.0.0                     Changelog since a commit
    git diff | cai --raw write a commit message

Exit codes:
    0 success, 1 all models failed, 2 usage error,
    3 some models failed, 130 interrupted
"""

import argparse
import logging
import re
import sys
from dataclasses import dataclass, field
from typing import TextIO

from cai import __version__
from cai.config import CredentialSource, Settings, configure_logging, get_settings
from cai.data.loader import (
    combine_prompt,
    load_attachment,
    load_attachments,
    parse_json_schema,
    read_git_log,
    read_piped_input,
)
from cai.dispatcher.fanout import FanoutCoordinator
from cai.dispatcher.handlers import ProviderClients
from cai.output.formatter import (
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    EXIT_USAGE,
    apply_json_schema,
    exit_code,
    render,
)
from cai.registry.models import AliasRegistry, ModelRef, ProviderKind, UnknownAlias
from cai.router.contexts import (
    CHANGELOG_MODEL,
    LANGUAGES,
    OCR_MODEL,
    OCR_PROMPT,
    changelog_prompt,
    create_contexts,
)
from cai.schemas.prompt import (
    Attachment,
    AttachmentKind,
    OutputMode,
    PromptRequest,
    UsageError,
)

logger = logging.getLogger(__name__)

# Options that take a value in the next argument.
VALUE_OPTIONS = frozenset({"-m", "--model", "-f", "--file", "--json-schema", "--timeout"})

NEGATIVE_NUMBER = re.compile(r"^-\d+$|^-\d*\.\d+$")


@dataclass
class Plan:
    """
    What one invocation dispatches, derived from the prompt words.

    Exactly one of `model_refs` / `tokens` is used: tokens come from -m
    and are resolved by the coordinator so an unknown one only fails its
    own slot.
    """

    words: list[str]
    model_refs: list[ModelRef] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    system_prompt: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    fixed_text: str | None = None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    language_list = ", ".join(LANGUAGES)
    parser = argparse.ArgumentParser(
        prog="cai",
        description="The fastest CLI tool for prompting LLMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  cai what is a monad                      Default model
  cai gp what is a monad                   Shortcut (OpenAI GPT-4o)
  cai anthropic opus what is a monad       Provider + model
  cai all what is a monad                  Every provider's default model
  cai -m gp -m so what is a monad          Selected models side by side
  cai value capital of Australia           Bare value only
  cai ocr receipt.png                      Extract text from an image
  cai changelog v1.0.0                     Changelog since a commit

Language contexts: {language_list}
        """,
    )

    parser.add_argument(
        "words",
        nargs="*",
        metavar="PROMPT",
        help="Optional model selector followed by the prompt",
    )
    parser.add_argument(
        "-m", "--model",
        action="append",
        dest="models",
        metavar="TOKEN",
        help="Send the prompt to this model (repeatable)",
    )
    parser.add_argument(
        "-f", "--file",
        action="append",
        dest="files",
        metavar="PATH",
        help="Attach a file; image, audio or text by MIME type (repeatable)",
    )
    parser.add_argument(
        "-r", "--raw",
        action="store_true",
        help="Print only the model's answer, without a header",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Ask for a JSON object response (implies --raw)",
    )
    parser.add_argument(
        "--json-schema",
        metavar="SCHEMA",
        help="JSON schema the response must satisfy (inline JSON or @path)",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        default=None,
        help="Request incremental responses where supported",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Upper bound for each provider call",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List providers and their model aliases",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log dispatch details to stderr",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def split_arguments(argv: list[str]) -> tuple[list[str], list[str]]:
    """
    Split arguments into options and prompt words.

    Options end at the first prompt word or at `--`. Everything after that
    is prompt text, so words like `-rf` or `-5` reach the model verbatim.
    """
    options: list[str] = []
    index = 0
    while index < len(argv):
        token = argv[index]
        if token == "--":
            return options, argv[index + 1:]
        if not token.startswith("-") or token == "-" or NEGATIVE_NUMBER.match(token):
            return options, argv[index:]

        options.append(token)
        index += 1
        if token.startswith("--"):
            takes_value = "=" not in token and token in VALUE_OPTIONS
        else:
            # Short flags may be bundled; only a trailing -m/-f takes the next argument.
            takes_value = f"-{token[-1]}" in VALUE_OPTIONS and all(
                f"-{flag}" not in VALUE_OPTIONS for flag in token[1:-1]
            )
        if takes_value and index < len(argv):
            options.append(argv[index])
            index += 1
    return options, []


def plan_invocation(words: list[str], models: list[str] | None, registry: AliasRegistry) -> Plan:
    """
    Decide which models receive the prompt.

    Args:
        words: Positional prompt words, possibly starting with a selector.
        models: Tokens given with -m.
        registry: Alias registry for this invocation.

    Returns:
        Plan with the target models and the remaining prompt words.

    Raises:
        UsageError: For a malformed ocr/changelog invocation.
    """
    if models:
        return Plan(words=words, tokens=list(models))

    if not words:
        return Plan(words=[], model_refs=[registry.default_model()])

    first, rest = words[0], words[1:]
    contexts = create_contexts()

    if first == "all":
        return Plan(words=rest, model_refs=registry.all_default_models())

    if first in contexts:
        context = contexts[first]
        if context.model_token:
            target = registry.resolve(context.model_token)
        else:
            target = registry.default_model()
        return Plan(words=rest, model_refs=[target], system_prompt=context.system_prompt)

    if first == "ocr":
        if len(rest) != 1:
            raise UsageError("Usage: cai ocr <image>")
        image = load_attachment(rest[0])
        if image.kind != AttachmentKind.IMAGE:
            raise UsageError(f"{rest[0]} is not an image ({image.mime_type})")
        return Plan(
            words=[],
            model_refs=[registry.resolve(OCR_MODEL)],
            attachments=[image],
            fixed_text=OCR_PROMPT,
        )

    if first == "changelog":
        if len(rest) != 1:
            raise UsageError("Usage: cai changelog <commit>")
        return Plan(
            words=[],
            model_refs=[registry.resolve(CHANGELOG_MODEL)],
            fixed_text=changelog_prompt(read_git_log(rest[0])),
        )

    if registry.is_shortcut(first):
        return Plan(words=rest, model_refs=[registry.resolve(first)])

    if registry.get_provider(first) is not None:
        # `<provider> <model> <prompt...>` needs a model and at least one prompt word
        if len(rest) >= 2:
            return Plan(words=rest[1:], model_refs=[registry.resolve_explicit(first, rest[0])])
        return Plan(words=rest, model_refs=[registry.resolve(first)])

    return Plan(words=words, model_refs=[registry.default_model()])


def list_models(registry: AliasRegistry) -> str:
    """Provider/alias overview for --list-models."""
    sections = []
    for provider in ProviderKind:
        header = f"{provider.display_name} ({provider.value})"
        sections.append(f"{header}\n{registry.describe_aliases(provider)}")
    return "\n\n".join(sections)


def run(
    argv: list[str] | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    settings: Settings | None = None,
    clients: ProviderClients | None = None,
) -> int:
    """
    Run one CLI invocation.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:]).
        stdin: Source of piped input (default: sys.stdin).
        stdout: Destination for answers (default: sys.stdout).
        stderr: Destination for errors (default: sys.stderr).
        settings: Settings to use (default: get_settings()).
        clients: Provider client factory (default: built from settings).

    Returns:
        Process exit code.
    """
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    parser = build_parser()
    options, words = split_arguments(sys.argv[1:] if argv is None else list(argv))
    args = parser.parse_args(options)
    args.words = words

    settings = settings or get_settings()
    if args.timeout is not None:
        if args.timeout <= 0:
            parser.error("--timeout must be greater than 0")
        settings = settings.model_copy(update={"request_timeout_seconds": args.timeout})
    configure_logging(settings, verbose=args.verbose)

    try:
        registry = AliasRegistry(default_token=settings.default_model)

        if args.list_models:
            print(list_models(registry), file=stdout)
            return EXIT_SUCCESS

        plan = plan_invocation(args.words, args.models, registry)

        json_schema = parse_json_schema(args.json_schema) if args.json_schema else None
        output_mode = OutputMode.RAW if (args.raw or args.json) else OutputMode.ANNOTATED

        text = plan.fixed_text or " ".join(plan.words)
        text = combine_prompt(text, read_piped_input(stdin))
        if not text.strip():
            raise UsageError("No prompt was provided")

        prompt = PromptRequest(
            text=text,
            attachments=(*plan.attachments, *load_attachments(args.files)),
            output_mode=output_mode,
            json_schema=json_schema,
            json_mode=args.json,
            system_prompt=plan.system_prompt,
            stream=settings.stream if args.stream is None else args.stream,
            max_tokens=settings.max_tokens,
        )

        coordinator = FanoutCoordinator(
            registry, CredentialSource(settings), clients=clients, settings=settings
        )
        if plan.tokens:
            result = coordinator.run_tokens(plan.tokens, prompt)
        else:
            result = coordinator.run(plan.model_refs, prompt)

        result = apply_json_schema(result, json_schema)
        output = render(result, output_mode)

    except (UsageError, UnknownAlias) as e:
        print(f"cai: error: {e}", file=stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("\nInterrupted", file=stderr)
        return EXIT_INTERRUPTED

    code = exit_code(result)
    if len(result) == 1 and code != EXIT_SUCCESS:
        print(output, file=stderr)
    else:
        print(output, file=stdout)
    return code


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
