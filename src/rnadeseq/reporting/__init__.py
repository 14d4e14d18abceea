# src/rnadeseq/reporting/__init__.py
"""Completion reporting: run summary, report files, email notification."""

from rnadeseq.reporting.completion import CompletionOutcome, CompletionReporter
from rnadeseq.reporting.notify import DeliveryOutcome, EmailNotifier, MailTransport, SmtpTransport
from rnadeseq.reporting.summary import FailureEntry, RunSummary, SkipEntry, build_run_summary
from rnadeseq.reporting.templates import render_html, render_text

__all__ = [
    "CompletionOutcome",
    "CompletionReporter",
    "DeliveryOutcome",
    "EmailNotifier",
    "FailureEntry",
    "MailTransport",
    "RunSummary",
    "SkipEntry",
    "SmtpTransport",
    "build_run_summary",
    "render_html",
    "render_text",
]
