"""
Base Runner Class - Common patterns for ThreadClear runners

Provides unified argument parsing, logging setup, configuration loading and
engine lifecycle shared by the CLI and Web API runners.
"""

import argparse
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ..config.manager import ConfigManager
from ..config.models import CoreConfig, LogLevel
from ..core.engine import ConversationAnalysisEngine, create_engine
from ..utils.logging import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class RunnerConfig:
    """Configuration specific to runner behavior"""
    name: str
    description: str
    log_to_console: bool = True


class BaseRunner(ABC):
    """
    Abstract base class for ThreadClear runners.

    Provides common patterns for:
    - Argument parsing with runner-specific extensions
    - Environment and logging setup
    - Configuration loading
    - Engine lifecycle management
    """

    def __init__(self, runner_config: RunnerConfig):
        self.runner_config = runner_config
        self.engine: Optional[ConversationAnalysisEngine] = None
        self._logger = logging.getLogger(f"{__name__}.{self.runner_config.name}")

    async def run(self, args: Optional[List[str]] = None) -> int:
        """Main runner entry point"""
        # Provider API keys usually live in .env
        load_dotenv()

        parser = self._create_argument_parser()
        parsed_args = parser.parse_args(args)
        try:
            config = await self._load_config(parsed_args)
            self._setup_logging(parsed_args, config)

            self.engine = await create_engine(config)
            return await self._execute_runner_logic(parsed_args, config)

        except Exception as e:
            self._logger.error(f"{self.runner_config.name} runner error: {e}")
            return 1
        finally:
            if self.engine is not None:
                await self.engine.close()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description=f"ThreadClear - {self.runner_config.description}",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=self._get_usage_examples()
        )
        self._add_base_arguments(parser)
        self._add_runner_arguments(parser)
        return parser

    def _add_base_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add common arguments shared by all runners"""
        parser.add_argument(
            "--config", "-c",
            type=Path,
            default=None,
            help="Configuration file path (default: threadclear.toml if present)"
        )
        parser.add_argument(
            "--log-level",
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            default=None,
            help="Override the configured logging level"
        )
        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )

    async def _load_config(self, args: argparse.Namespace) -> CoreConfig:
        config = await ConfigManager().load_config(args.config)
        if args.debug:
            config.debug = True
            config.log_level = LogLevel.DEBUG
        elif args.log_level:
            config.log_level = LogLevel(args.log_level)
        return config

    def _setup_logging(self, args: argparse.Namespace, config: CoreConfig) -> None:
        setup_logging(
            level=config.log_level,
            log_file=config.log_file,
            enable_console=self.runner_config.log_to_console,
        )

    @abstractmethod
    def _add_runner_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add runner-specific command line arguments"""
        pass

    @abstractmethod
    def _get_usage_examples(self) -> str:
        """Get usage examples for help text"""
        pass

    @abstractmethod
    async def _execute_runner_logic(self, args: argparse.Namespace, config: CoreConfig) -> int:
        """Run the runner's main logic; return the process exit code"""
        pass
