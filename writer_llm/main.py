"""
Command-line front end for the generation client.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from writer_llm.config import Configuration
from writer_llm.llm import LLMError, TextGenerator
from writer_llm.logging_utils import configure_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="writer-llm",
        description="Generate text from a prompt via the configured provider.",
    )
    parser.add_argument("prompt", nargs="?", help="Prompt text")
    parser.add_argument("--model", help="Model id (see --list-models)")
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--max-tokens", type=int, dest="max_tokens")
    parser.add_argument(
        "--stream", action="store_true", default=None, help="Stream the response"
    )
    parser.add_argument(
        "--list-models", action="store_true", help="Print the model catalog and exit"
    )
    parser.add_argument("--config", help="Path to an alternative config.yaml")
    return parser


class SuffixPrinter:
    """Writes only the newly added tail of each progress update."""

    def __init__(self, out=None) -> None:
        self.out = out or sys.stdout
        self._printed = 0

    def __call__(self, full_text: str) -> None:
        self.out.write(full_text[self._printed:])
        self.out.flush()
        self._printed = len(full_text)


async def run(args: argparse.Namespace) -> int:
    """Execute one CLI invocation and return the exit status."""
    config = Configuration(args.config)
    configure_logging(config.get_logging_config().get("level", "INFO"))

    async with TextGenerator.from_config(config) as generator:
        if args.list_models:
            default_model = generator.catalog.default_model
            for model in generator.get_available_models():
                marker = "*" if model.id == default_model else " "
                print(f"{marker} {model.id}\t{model.name}")
            return 0

        if not args.prompt:
            print("error: a prompt is required", file=sys.stderr)
            return 2

        options = {
            key: value
            for key, value in (
                ("model", args.model),
                ("temperature", args.temperature),
                ("max_tokens", args.max_tokens),
                ("stream", args.stream),
            )
            if value is not None
        }

        try:
            if options.get("stream"):
                await generator.generate(args.prompt, options, on_stream=SuffixPrinter())
                print()
            else:
                print(await generator.generate(args.prompt, options))
        except LLMError as e:
            logger.error("Generation failed", error=str(e), error_type=type(e).__name__)
            return 1

    return 0


def main() -> None:
    args = build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
