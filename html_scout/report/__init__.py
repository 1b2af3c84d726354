# File: html_scout/report/__init__.py
"""html_scout.report: генерация отчётов об аудите (JSON и HTML)."""

from html_scout.report.html_report import render_html
from html_scout.report.json_report import render_json

__all__ = ["render_json", "render_html"]
