# File: chapter_scout/report/__init__.py
"""chapter_scout.report: report writers used by the CLI and tests."""

from chapter_scout.report.json_report import render_json

__all__ = ["render_json"]
