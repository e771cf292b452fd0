# chapter_scout/report/json_report.py

"""
JSON report of a ChapterScout run.

Serializes a :class:`~chapter_scout.aggregator.ScrapeReport` to a file.
"""
import json
from pathlib import Path

from chapter_scout.aggregator import ScrapeReport


def render_json(report: ScrapeReport, output_path: Path | str) -> Path:
    """
    Save *report* as indented UTF-8 JSON at *output_path*.

    :param report: result of a scrape run
    :param output_path: target file; missing parent directories are created
    :return: Path of the written file

    Example:
    ```python
    from chapter_scout.report.json_report import render_json
    report_path = render_json(report, 'reports/chapter.json')
    print(f"JSON report saved to: {report_path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    with output.open('w', encoding='utf-8') as f:
        json.dump(report.as_dict(), f, ensure_ascii=False, indent=2)

    return output
