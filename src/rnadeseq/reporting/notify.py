# src/rnadeseq/reporting/notify.py
"""Best-effort email notification with a two-tier fallback.

Tier 1 (rich): HTML with a plain-text alternative, plus the report archive
attached when it is small enough. Tier 2 (plain): text only, no
attachment. A failed tier is logged as a warning and never raised; the
caller receives a DeliveryOutcome describing what happened.
"""

from __future__ import annotations

import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Literal, Protocol

import structlog

from rnadeseq.contracts.errors import NotificationFailure
from rnadeseq.core.config import NotificationSettings
from rnadeseq.reporting.summary import RunSummary

slog = structlog.get_logger(__name__)

type Tier = Literal["rich", "plain"]


class MailTransport(Protocol):
    """Sends one fully built message."""

    def send(self, message: EmailMessage) -> None: ...


class SmtpTransport:
    """smtplib transport configured from NotificationSettings."""

    def __init__(self, settings: NotificationSettings) -> None:
        self._settings = settings

    def send(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.timeout_seconds) as smtp:
            if settings.use_tls:
                smtp.starttls()
            if settings.smtp_user is not None and settings.smtp_password is not None:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """What the notifier managed to do.

    Attributes:
        delivered: A message was handed to the transport successfully
        tier: Tier that succeeded (None when nothing was delivered)
        failures: One NotificationFailure per failed tier, in order
    """

    delivered: bool
    tier: Tier | None = None
    failures: tuple[NotificationFailure, ...] = ()


def subject_for(summary: RunSummary) -> str:
    status = "Successful" if summary.success else "FAILED"
    return f"[rnadeseq] {status}: {summary.run_name}"


class EmailNotifier:
    """Delivers the completion summary by email.

    Example:
        notifier = EmailNotifier(settings.notification)
        outcome = notifier.notify(summary, text=text, html=html, attachment=archive)
    """

    def __init__(self, settings: NotificationSettings, transport: MailTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport if transport is not None else SmtpTransport(settings)

    @property
    def enabled(self) -> bool:
        return bool(self._settings.email)

    def _base_message(self, summary: RunSummary) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject_for(summary)
        message["From"] = self._settings.sender
        message["To"] = self._settings.email
        return message

    def build_rich(self, summary: RunSummary, *, text: str, html: str, attachment: Path | None) -> EmailMessage:
        message = self._base_message(summary)
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        if attachment is not None and attachment.exists():
            size = attachment.stat().st_size
            if size <= self._settings.max_attachment_bytes:
                message.add_attachment(
                    attachment.read_bytes(),
                    maintype="application",
                    subtype="zip",
                    filename=attachment.name,
                )
            else:
                slog.info(
                    "attachment_too_large",
                    path=str(attachment),
                    size=size,
                    max_size=self._settings.max_attachment_size,
                )
        return message

    def build_plain(self, summary: RunSummary, *, text: str) -> EmailMessage:
        message = self._base_message(summary)
        message.set_content(text)
        return message

    def _try(self, tier: Tier, build: Callable[[], EmailMessage]) -> NotificationFailure | None:
        try:
            self._transport.send(build())
        except Exception as e:
            # Delivery is best-effort: every failure becomes a warning
            failure = NotificationFailure(f"email/{tier}", e)
            slog.warning("notification_failed", tier=tier, recipient=self._settings.email, error=str(e))
            return failure
        slog.info("notification_sent", tier=tier, recipient=self._settings.email)
        return None

    def notify(
        self,
        summary: RunSummary,
        *,
        text: str,
        html: str,
        attachment: Path | None = None,
    ) -> DeliveryOutcome:
        """Send the summary, falling back to plain text once. Never raises."""
        if not self.enabled:
            return DeliveryOutcome(delivered=False)

        failures: list[NotificationFailure] = []
        if not self._settings.plaintext_email:
            failure = self._try("rich", lambda: self.build_rich(summary, text=text, html=html, attachment=attachment))
            if failure is None:
                return DeliveryOutcome(delivered=True, tier="rich")
            failures.append(failure)

        failure = self._try("plain", lambda: self.build_plain(summary, text=text))
        if failure is None:
            return DeliveryOutcome(delivered=True, tier="plain", failures=tuple(failures))
        failures.append(failure)
        return DeliveryOutcome(delivered=False, failures=tuple(failures))
