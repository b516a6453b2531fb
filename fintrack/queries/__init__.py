"""Dashboard metrics package."""

from fintrack.queries.executor import MetricsExecutor, QueryExecutionError, summarize

__all__ = ["MetricsExecutor", "QueryExecutionError", "summarize"]
