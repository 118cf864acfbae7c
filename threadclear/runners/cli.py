"""
CLI Runner - Command line interface for ThreadClear

Analyzes a conversation from a file, stdin, or an interactive paste prompt
and prints the result as camelCase JSON on stdout. Logs go to stderr.
"""

import argparse
import asyncio
import json
import mimetypes
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession

from ..config.models import AnalysisOptions, CoreConfig
from ..core.engine import AnalysisResult
from ..core.errors import InvalidRequestError, ProviderUnavailableError
from .base import BaseRunner, RunnerConfig

DETECTOR_NAMES = tuple(AnalysisOptions().enabled_detectors().keys())

EXIT_INVALID_REQUEST = 2
EXIT_PROVIDER_UNAVAILABLE = 3


class CLIRunner(BaseRunner):
    """Analyze one conversation and print JSON"""

    def __init__(self):
        super().__init__(RunnerConfig(
            name="CLI",
            description="Analyze a conversation and print JSON",
        ))

    def _add_runner_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "input",
            nargs="?",
            default="-",
            help="Conversation file, or - for stdin (default: -)"
        )
        parser.add_argument(
            "--source", "-s",
            default="Unknown",
            help="Source type: email, chat, slack, sms, ... (default: detect)"
        )
        parser.add_argument(
            "--mode", "-m",
            choices=["basic", "advanced", "auto"],
            default=None,
            help="Parsing mode (default: from config)"
        )
        parser.add_argument(
            "--draft",
            type=Path,
            default=None,
            help="File holding a reply draft to review"
        )
        parser.add_argument(
            "--disable",
            action="append",
            choices=DETECTOR_NAMES,
            default=[],
            help="Disable a detector (repeatable)"
        )
        parser.add_argument(
            "--reference-time",
            default=None,
            help="ISO timestamp used as 'now' (default: current time)"
        )
        parser.add_argument(
            "--image",
            action="store_true",
            help="Treat the input file as a conversation screenshot"
        )
        parser.add_argument(
            "--interactive", "-i",
            action="store_true",
            help="Paste the conversation into a prompt (Esc+Enter to finish)"
        )
        parser.add_argument(
            "--indent",
            type=int,
            default=2,
            help="JSON indentation (default: 2)"
        )

    def _get_usage_examples(self) -> str:
        return """
Examples:
  threadclear thread.txt                       # Analyze a file
  cat thread.eml | threadclear --source email  # Analyze stdin
  threadclear thread.txt --draft reply.txt     # Also review a reply draft
  threadclear chat.txt --mode basic --disable suggested_actions
  threadclear screenshot.png --image           # Transcribe and analyze a screenshot
  threadclear -i                               # Paste a conversation
        """

    async def _execute_runner_logic(self, args: argparse.Namespace, config: CoreConfig) -> int:
        options = config.analysis.model_copy(
            update={f"enable_{name}": False for name in args.disable}
        )
        reference_time = self._parse_reference_time(args.reference_time)
        draft = args.draft.read_text(encoding="utf-8") if args.draft else None

        try:
            if args.image:
                if args.input == "-":
                    raise InvalidRequestError("--image needs a file path")
                path = Path(args.input)
                mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
                result = await self.engine.analyze_image(
                    path.read_bytes(), mime_type, parsing_mode=args.mode, options=options,
                    draft=draft, reference_time=reference_time,
                )
            else:
                text = await self._read_text(args)
                result = await self.engine.analyze(
                    text, source_type=args.source, parsing_mode=args.mode, options=options,
                    draft=draft, reference_time=reference_time,
                )
        except InvalidRequestError as e:
            print(f"Invalid request: {e}", file=sys.stderr)
            return EXIT_INVALID_REQUEST
        except ProviderUnavailableError as e:
            print(f"AI provider unavailable: {e}", file=sys.stderr)
            return EXIT_PROVIDER_UNAVAILABLE

        self._print_result(result, args.indent)
        return 0

    async def _read_text(self, args: argparse.Namespace) -> str:
        if args.interactive:
            session = PromptSession()
            return await session.prompt_async(
                "Paste the conversation, then press Esc+Enter:\n", multiline=True
            )
        if args.input == "-":
            return await asyncio.to_thread(sys.stdin.read)
        return Path(args.input).read_text(encoding="utf-8")

    @staticmethod
    def _parse_reference_time(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    @staticmethod
    def _print_result(result: AnalysisResult, indent: int) -> None:
        payload = result.to_wire()
        sys.stdout.write(json.dumps(payload, indent=indent or None, ensure_ascii=False))
        sys.stdout.write("\n")


def run_cli() -> int:
    """Entry point for CLI runner"""
    try:
        runner = CLIRunner()
        return asyncio.run(runner.run())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(run_cli())
