"""Reports package."""

from coinpurse.reports.dashboard import ReportBuilder, quantize_amount

__all__ = [
    "ReportBuilder",
    "quantize_amount",
]
