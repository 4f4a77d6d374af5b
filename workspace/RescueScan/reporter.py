"""
Report generation for RescueScan
One file per finished scan pass, written into the scan's history directory
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

from jinja2 import Template

from config import Config
from utils import format_duration, format_status, sanitize_path

EXTENSIONS = {'html': 'html', 'json': 'json', 'markdown': 'md'}

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>RescueScan Report {{ report.scan_id }}</title>
  <style>
    body { font-family: Helvetica, Arial, sans-serif; margin: 24px; color: #222; }
    header { border-bottom: 3px solid #34495e; margin-bottom: 16px; }
    table { border-collapse: collapse; width: 100%; }
    th, td { border: 1px solid #ccc; padding: 6px 10px; text-align: left; vertical-align: top; }
    th { background: #f2f2f2; }
    .conflict { color: #c0392b; font-weight: bold; }
    .healthy { color: #1e8449; }
    .pending { color: #888; }
    .diagnosis { background: #fdf6e3; padding: 12px; margin: 16px 0; }
    pre { white-space: pre-wrap; margin: 0; }
  </style>
</head>
<body>
  <header>
    <h1>🔍 RescueScan Conflict Report</h1>
    <p>{{ report.scan_id }} &middot; {{ report.mode }} mode &middot; {{ generated }}</p>
  </header>

  <p>
    Final state <strong>{{ report.state }}</strong> after {{ duration }}:
    {{ counts.healthy }} healthy, {{ counts.conflict }} conflicting, {{ counts.pending }} not probed.
  </p>
  {% if report.error %}<p class="conflict">Scan failed: {{ report.error }}</p>{% endif %}

  {% if report.diagnosis %}
  <section class="diagnosis">
    <h2>🧠 Diagnosis ({{ report.diagnosis.severity }})</h2>
    <p>{{ report.diagnosis.summary }}</p>
    <p><strong>Recommendation:</strong> {{ report.diagnosis.recommendation }}</p>
    <pre>{{ report.diagnosis.technical_details }}</pre>
  </section>
  {% endif %}

  <table>
    <tr><th>#</th><th>Component</th><th>File</th><th>Status</th><th>Error</th></tr>
    {% for component in report.components %}
    <tr>
      <td>{{ loop.index }}</td>
      <td>{{ component.name }}</td>
      <td><code>{{ component.file }}</code></td>
      <td class="{{ component.status }}">{{ component.status }}</td>
      <td><pre>{{ component.error or '' }}</pre></td>
    </tr>
    {% endfor %}
  </table>
  {% if report.skipped %}<p>Skipped: {{ report.skipped | join(', ') }}</p>{% endif %}
</body>
</html>
"""


class ReportGenerator:
    """Writes a scan report in the configured format"""

    def __init__(self, config: Config):
        self.config = config

    def generate_report(self, report: Dict[str, Any], output_dir: str) -> str:
        """Render report into output_dir and return the file path"""
        fmt = self.config.report_format
        if fmt not in EXTENSIONS:
            raise ValueError(f"Unsupported report format: {fmt}")

        scan_id = report.get('scan_id') or datetime.now().strftime('%Y%m%d_%H%M%S')
        report_path = Path(output_dir) / f"rescuescan_report_{scan_id}.{EXTENSIONS[fmt]}"

        render = {
            'html': self._render_html,
            'json': self._render_json,
            'markdown': self._render_markdown,
        }[fmt]
        report_path.write_text(render(report), encoding='utf-8')
        return str(report_path)

    @staticmethod
    def count_statuses(report: Dict[str, Any]) -> Dict[str, int]:
        counts = {'pending': 0, 'scanning': 0, 'healthy': 0, 'conflict': 0}
        for component in report.get('components', []):
            counts[component['status']] = counts.get(component['status'], 0) + 1
        return counts

    def _render_html(self, report: Dict[str, Any]) -> str:
        template = Template(HTML_TEMPLATE, autoescape=True)
        return template.render(
            report=report,
            counts=self.count_statuses(report),
            duration=format_duration(report.get('scan_duration') or 0),
            generated=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )

    def _render_json(self, report: Dict[str, Any]) -> str:
        return json.dumps({
            'report_info': {
                'generated_at': datetime.now().isoformat(),
                'components_dir': sanitize_path(self.config.components_dir),
                'counts': self.count_statuses(report),
            },
            'scan': report,
        }, indent=2)

    def _render_markdown(self, report: Dict[str, Any]) -> str:
        counts = self.count_statuses(report)
        lines = [
            "# 🔍 RescueScan Conflict Report",
            "",
            f"- **Scan:** {report.get('scan_id')} ({report.get('mode')} mode)",
            f"- **Final state:** {report.get('state')}",
            f"- **Duration:** {format_duration(report.get('scan_duration') or 0)}",
            f"- **Healthy / conflicts / not probed:** {counts['healthy']} / {counts['conflict']} / {counts['pending']}",
        ]
        if report.get('error'):
            lines += ["", f"**Scan failed:** {report['error']}"]

        diagnosis = report.get('diagnosis')
        if diagnosis:
            lines += [
                "",
                f"## 🧠 Diagnosis ({diagnosis['severity']})",
                "",
                diagnosis['summary'],
                "",
                f"**Recommendation:** {diagnosis['recommendation']}",
                "",
                "```",
                diagnosis['technical_details'],
                "```",
            ]

        lines += ["", "## 🔌 Components", ""]
        for i, component in enumerate(report.get('components', []), 1):
            lines.append(f"{i}. **{component['name']}** `{component['file']}` {format_status(component['status'])}")
            if component.get('error'):
                lines.append(f"   - {component['error']}")

        if report.get('skipped'):
            lines += ["", f"Skipped: {', '.join(report['skipped'])}"]
        return "\n".join(lines) + "\n"
