# html_scout/report/json_report.py

"""
Генерация JSON-отчёта для проекта HTMLScout.

Сериализация объекта AuditReport в файл.
"""
import json
from pathlib import Path

from html_scout.aggregator import AuditReport


def render_json(report: AuditReport, output_path: Path | str) -> Path:
    """
    Сохраняет отчёт report в формате JSON по указанному пути.

    :param report: объект AuditReport с результатами аудита
    :param output_path: путь к JSON-файлу
    :return: Path сохранённого файла

    Пример:
    ```python
    from html_scout.report.json_report import render_json
    report_path = render_json(report, 'reports/report.json')
    print(f"JSON report saved to: {report_path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    data = {
        'documents': report.documents,
        'errors': report.errors,
        'warnings': report.warnings,
        'duration': report.duration,
        'issues': report.issues,
    }

    with output.open('w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)

    return output
