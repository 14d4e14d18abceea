# src/rnadeseq/reporting/completion.py
"""Completion reporter: the end-of-run reduce, report files and notification.

Writing the report files is part of the run: an I/O error there propagates.
Notification is best-effort and never changes the run outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import structlog

from rnadeseq.contracts.run import RunContext
from rnadeseq.engine.orchestrator.types import RunResult
from rnadeseq.reporting.notify import DeliveryOutcome, EmailNotifier
from rnadeseq.reporting.summary import RunSummary
from rnadeseq.reporting.templates import render_html, render_text

slog = structlog.get_logger(__name__)

REPORT_DIR = "pipeline_info"
REPORT_HTML = "pipeline_report.html"
REPORT_TEXT = "pipeline_report.txt"

# Published location of the final report archive, attached to the email
REPORT_ARCHIVE = Path("report") / "report.zip"


@dataclass(frozen=True, slots=True)
class CompletionOutcome:
    summary: RunSummary
    html_path: Path
    text_path: Path
    notification: DeliveryOutcome


class CompletionReporter:
    """Finalizes the run summary once the graph has terminated.

    Example:
        reporter = CompletionReporter(context, notifier=EmailNotifier(settings.notification))
        outcome = reporter.complete(summary, run_result)
    """

    def __init__(self, context: RunContext, *, notifier: EmailNotifier | None = None) -> None:
        self._context = context
        self._notifier = notifier

    def report_archive(self) -> Path | None:
        archive = self._context.outdir / REPORT_ARCHIVE
        return archive if archive.is_file() else None

    def complete(self, summary: RunSummary, result: RunResult, *, completed_at: datetime | None = None) -> CompletionOutcome:
        """Finalize ``summary`` from ``result``, write the reports, notify.

        Raises:
            OSError: The report files could not be written
        """
        final = summary.finalize(result, completed_at)
        text = render_text(final)
        html = render_html(final)

        report_dir = self._context.outdir / REPORT_DIR
        report_dir.mkdir(parents=True, exist_ok=True)
        html_path = report_dir / REPORT_HTML
        text_path = report_dir / REPORT_TEXT
        html_path.write_text(html, encoding="utf-8")
        text_path.write_text(text, encoding="utf-8")
        slog.info("completion_report_written", html=str(html_path), text=str(text_path), success=final.success)

        if self._notifier is not None:
            notification = self._notifier.notify(final, text=text, html=html, attachment=self.report_archive())
        else:
            notification = DeliveryOutcome(delivered=False)

        return CompletionOutcome(summary=final, html_path=html_path, text_path=text_path, notification=notification)
