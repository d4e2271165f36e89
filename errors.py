"""Exceptions raised by the building timeline workflow."""

from __future__ import annotations


class WorkflowError(RuntimeError):
    """Base class for fatal workflow errors."""


class QueryError(WorkflowError):
    """The dataset backend could not answer a query."""


class PreconditionError(WorkflowError, ValueError):
    """A stage was called with inputs it cannot work with."""


class ExportSubmissionError(WorkflowError):
    """The export backend rejected a job."""
