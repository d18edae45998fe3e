"""
Merge, decode and filter stages run against the capture store.

External tools are invoked through a CommandRunner so the stages can be
exercised with a fake runner.
"""

from .executor import CommandResult, CommandRunner, SubprocessRunner
from .filter_compiler import compile_filter
from .capture_pipeline import CapturePipeline

__all__ = ["CommandResult", "CommandRunner", "SubprocessRunner", "compile_filter", "CapturePipeline"]
