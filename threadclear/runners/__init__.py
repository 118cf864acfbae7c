"""
Application Runners - Different ways to run ThreadClear

Provides the command line and Web API entry points.
"""

from .cli import CLIRunner, run_cli
from .webapi_runner import WebAPIRunner, run_webapi

__all__ = [
    # Runner classes
    "CLIRunner",
    "WebAPIRunner",

    # Entry point functions
    "run_cli",
    "run_webapi",
]
