"""
Exceptions Module
=================

Error hierarchy for the analysis pipeline. Every stage fails fast by
raising one of these; ``main.py`` tags the failing stage and aborts.

Classes:
    - AnalysisError: Base class carrying stage name and context
    - DataFormatError: Malformed or missing input source
    - SchemaMismatchError: Testing table lacks or mistypes selected feature columns
    - FitError: Model fitting rejected the input or failed
"""

from typing import Any, Dict, Optional


class AnalysisError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Initialize the error.

        Args:
            message: Human-readable error message
            stage: Pipeline stage that failed (set by the orchestrator if omitted)
            context: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.context = context or {}

    def __str__(self) -> str:
        msg = self.message
        if self.stage:
            msg = f"[{self.stage}] {msg}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (Context: {context_str})"
        return msg


class DataFormatError(AnalysisError):
    """Raised when an input source is missing, empty or not well-formed tabular text."""
    pass


class SchemaMismatchError(AnalysisError):
    """Raised when the testing table lacks a column of the training selection."""
    pass


class FitError(AnalysisError):
    """Raised when model fitting receives invalid input or the library fails."""
    pass
