"""Base class for the command-line pipelines."""

from abc import ABC, abstractmethod
from pathlib import Path

from typing import Any

from rich.console import Console


class PipelineBase(ABC):
    """Abstract base class for pipeline stages.

    Provides common functionality for all stages including:
    - Console initialization for progress display
    - Output directory resolution

    Subclasses must implement:
    - load(): Read and validate the input, before any network access
    - run(): Main stage orchestration logic
    """

    #: Output subdirectory under the configured output dir
    stage: str

    def __init__(self, output_dir: str | Path, console: Console | None = None) -> None:
        """Initialize the stage.

        Args:
            output_dir: Root directory for everything the stage writes
            console: Rich console (a new one by default)
        """
        self.output_dir = Path(output_dir)
        self.console = console or Console()

    @property
    def stage_dir(self) -> Path:
        """Directory this stage writes into, created on first use."""
        path = self.output_dir / self.stage
        path.mkdir(parents=True, exist_ok=True)
        return path

    @abstractmethod
    def load(self, source: str) -> Any:
        """Read and validate the input file.

        Raises:
            FormatError: If the input is missing or malformed
        """
        ...

    @abstractmethod
    async def run(self, loaded: Any) -> None:
        """Run the stage on the validated input."""
        ...


__all__ = ["PipelineBase"]
