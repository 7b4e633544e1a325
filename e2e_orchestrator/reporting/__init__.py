"""Report generation and result history for finished executions."""

from .aggregator import ReportAggregator, ReportOutcome
from .history import HistoryEntry, ResultHistory

__all__ = ["ReportAggregator", "ReportOutcome", "HistoryEntry", "ResultHistory"]
