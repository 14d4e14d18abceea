# src/rnadeseq/reporting/templates.py
"""Jinja2 templates for the completion report (HTML and plain text)."""

from __future__ import annotations

from jinja2 import Environment, StrictUndefined

from rnadeseq import __version__
from rnadeseq.reporting.summary import RunSummary

__all__ = ["render_html", "render_text"]

_TEXT_TEMPLATE = """\
========================================
 rnadeseq v{{ version }}
========================================
Run Name: {{ summary.run_name }}

{% if summary.success -%}
## rnadeseq execution completed successfully! ##
{%- else -%}
####################################################
## rnadeseq execution completed unsuccessfully! ##
####################################################
The exit status of the task that caused the workflow execution to fail was: {{ summary.exit_status }}.
{% for failure in summary.failures %}
Stage '{{ failure.stage }}' failed: {{ failure.cause }}
{%- if failure.stderr_tail %}
{{ failure.stderr_tail }}
{%- endif %}
{% endfor %}
{%- if summary.skipped %}
Stages not run because an upstream stage did not succeed:
{% for skip in summary.skipped %}  - {{ skip.stage }} (blocked by {{ skip.blocked_by | join(", ") }})
{% endfor %}
{%- endif %}
{%- endif %}

The workflow was completed at {{ completed_at }} (duration: {{ summary.duration }})

Pipeline Configuration:
-----------------------
{% for key, value in summary.fields.items() %} - {{ key }}: {{ value }}
{% endfor %}
--
rnadeseq
"""

_HTML_TEMPLATE = """\
<html>
<head>
  <meta charset="utf-8">
  <title>rnadeseq Pipeline Report</title>
</head>
<body>
<div style="font-family: Helvetica, Arial, sans-serif; padding: 30px; max-width: 800px; margin: 0 auto;">
<h1>rnadeseq v{{ version }}</h1>
<h2>Run Name: {{ summary.run_name }}</h2>
{% if summary.success %}
<div style="color: #3c763d; background-color: #dff0d8; border-color: #d6e9c6; padding: 15px; margin-bottom: 20px; border: 1px solid transparent; border-radius: 4px;">
  rnadeseq execution completed successfully!
</div>
{% else %}
<div style="color: #a94442; background-color: #f2dede; border-color: #ebccd1; padding: 15px; margin-bottom: 20px; border: 1px solid transparent; border-radius: 4px;">
  <h4 style="margin-top:0; color: inherit;">rnadeseq execution completed unsuccessfully!</h4>
  <p>The exit status of the task that caused the workflow execution to fail was: <code>{{ summary.exit_status }}</code>.</p>
  {% for failure in summary.failures %}
  <p>Stage <code>{{ failure.stage }}</code> failed: {{ failure.cause }}</p>
  {% if failure.stderr_tail %}<pre style="white-space: pre-wrap; overflow: visible; margin-bottom: 0;">{{ failure.stderr_tail }}</pre>{% endif %}
  {% endfor %}
  {% if summary.skipped %}
  <p>Stages not run because an upstream stage did not succeed:</p>
  <ul>
  {% for skip in summary.skipped %}<li><code>{{ skip.stage }}</code> (blocked by {{ skip.blocked_by | join(", ") }})</li>
  {% endfor %}
  </ul>
  {% endif %}
</div>
{% endif %}
<p>The workflow was completed at <strong>{{ completed_at }}</strong> (duration: <strong>{{ summary.duration }}</strong>)</p>
<h3>Pipeline Configuration:</h3>
<table style="width:100%; max-width:100%; border-spacing: 0; border-collapse: collapse; border:0; margin-bottom: 20px;">
  <tbody style="border-bottom: 1px solid #ddd;">
  {% for key, value in summary.fields.items() %}
    <tr><th style="text-align:left; padding: 8px 0; line-height: 1.42857143; vertical-align: top; border-top: 1px solid #ddd;">{{ key }}</th><td style="text-align:left; padding: 8px; line-height: 1.42857143; vertical-align: top; border-top: 1px solid #ddd;"><pre style="white-space: pre-wrap; overflow: visible;">{{ value }}</pre></td></tr>
  {% endfor %}
  </tbody>
</table>
{% if summary.stage_statuses %}
<h3>Stages:</h3>
<ul>
{% for stage, status in summary.stage_statuses.items() %}<li><code>{{ stage }}</code>: {{ status.value }}</li>
{% endfor %}
</ul>
{% endif %}
</div>
</body>
</html>
"""

_text_env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)
_html_env = Environment(undefined=StrictUndefined, autoescape=True)

_text_template = _text_env.from_string(_TEXT_TEMPLATE)
_html_template = _html_env.from_string(_HTML_TEMPLATE)


def _context(summary: RunSummary) -> dict[str, object]:
    if not summary.is_final:
        raise ValueError("Only a finalized run summary can be rendered")
    assert summary.completed_at is not None
    return {
        "summary": summary,
        "version": __version__,
        "completed_at": summary.completed_at.isoformat(sep=" ", timespec="seconds"),
    }


def render_text(summary: RunSummary) -> str:
    """Plain-text completion report."""
    return _text_template.render(**_context(summary))


def render_html(summary: RunSummary) -> str:
    """HTML completion report. Every value is escaped."""
    return _html_template.render(**_context(summary))
