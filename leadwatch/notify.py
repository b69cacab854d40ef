from __future__ import annotations

import html
import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, tzinfo
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests
from rich.console import Console

from leadwatch.config import EmailConfig, WatchConfig
from leadwatch.errors import NotifierError
from leadwatch.models import Lead
from leadwatch.utils import local_now, short_snippet

logger = logging.getLogger("leadwatch.notify")


def format_elapsed(elapsed: timedelta) -> str:
    total_seconds = max(0, int(elapsed.total_seconds()))
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts: list[str] = []
    if days:
        parts.append(f"{days} day(s)")
    if hours:
        parts.append(f"{hours} hour(s)")
    if minutes:
        parts.append(f"{minutes} minute(s)")
    parts.append(f"{seconds} second(s)")
    return ", ".join(parts)


def summary_line(lead: Lead, elapsed: timedelta | None = None) -> str:
    message = f"Lead Update: {lead.current_status.value} - {short_snippet(lead.title, 80)}"
    if elapsed is not None:
        message += f" (after {format_elapsed(elapsed)})"
    return message


class Notifier(ABC):
    name = "base"

    @abstractmethod
    def notify(self, lead: Lead, elapsed: timedelta | None = None) -> None:
        raise NotImplementedError


class ConsoleNotifier(Notifier):
    name = "stdout"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def notify(self, lead: Lead, elapsed: timedelta | None = None) -> None:
        self.console.print(summary_line(lead, elapsed))


class DiscordNotifier(Notifier):
    name = "discord"

    def __init__(self, webhook: str, timeout_seconds: int = 8) -> None:
        self.webhook = webhook
        self.timeout_seconds = timeout_seconds

    def notify(self, lead: Lead, elapsed: timedelta | None = None) -> None:
        try:
            resp = requests.post(self.webhook, json={"content": summary_line(lead, elapsed)}, timeout=self.timeout_seconds)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotifierError(f"Discord webhook failed: {exc}") from exc


class EmailNotifier(Notifier):
    """Sends one HTML + plain text email per lead event over SMTP."""

    name = "email"

    def __init__(
        self,
        settings: EmailConfig,
        keywords: tuple[str, ...] = (),
        match_mode: str = "each",
        tz: tzinfo | None = None,
        timeout_seconds: int = 30,
    ) -> None:
        self.settings = settings
        self.tz = tz
        self.keywords = keywords
        self.match_mode = match_mode
        self.timeout_seconds = timeout_seconds

    def notify(self, lead: Lead, elapsed: timedelta | None = None) -> None:
        msg = self.build_message(lead, elapsed, local_now(self.tz))
        try:
            self._send(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotifierError(f"SMTP delivery failed: {exc}") from exc
        logger.info("email notification sent for %s", lead.id)

    def build_message(self, lead: Lead, elapsed: timedelta | None, sent_at: datetime) -> MIMEMultipart:
        status = lead.current_status.value
        keywords = ", ".join(self.keywords)
        stamp = sent_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()

        text_lines = [
            "Lead Status Update!",
            f'A lead\'s status has been updated to "{status}" at {stamp}.',
        ]
        if elapsed is not None:
            text_lines.append(f"Time as Potential Lead: {format_elapsed(elapsed)}")
        text_lines.extend([
            f"Keywords Searched: {keywords}",
            f"Match Type: {self.match_mode}",
            "",
            "Lead Content Preview:",
            lead.content,
            "",
            "Links:",
        ])
        text_lines.extend(f"- {link.text or 'Untitled Link'}: {link.href or ''}" for link in lead.links)

        elapsed_html = f"<p><b>Time as Potential Lead:</b> {format_elapsed(elapsed)}</p>" if elapsed is not None else ""
        links_html = "".join(
            f'<li><a href="{html.escape(link.href or "", quote=True)}">{html.escape(link.text or "Untitled Link")}</a></li>'
            for link in lead.links
        )
        body_html = (
            "<h1>Lead Status Update!</h1>"
            f"<p>A lead's status has been updated to \"<b>{html.escape(status)}</b>\" at {html.escape(stamp)}.</p>"
            f"{elapsed_html}"
            f"<p><b>Keywords Searched:</b> {html.escape(keywords)}</p>"
            f"<p><b>Match Type:</b> {html.escape(self.match_mode)}</p>"
            "<hr><h2>Lead Content Preview:</h2>"
            '<p style="white-space: pre-wrap; font-family: monospace; background-color: #f4f4f4; padding: 15px;">'
            f"{html.escape(lead.content)}</p>"
            f"<h2>Links:</h2><ul>{links_html}</ul>"
        )

        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText("\n".join(text_lines), "plain", "utf-8"))
        msg.attach(MIMEText(body_html, "html", "utf-8"))
        msg["Subject"] = f"Lead Update: {status}"
        msg["From"] = f"Lead Monitor <{self.settings.user}>"
        msg["To"] = self.settings.to
        return msg

    def _send(self, msg: MIMEMultipart) -> None:
        settings = self.settings
        recipients = [addr.strip() for addr in settings.to.split(",") if addr.strip()]
        if settings.port == 465:
            with smtplib.SMTP_SSL(settings.host, settings.port, timeout=self.timeout_seconds, context=ssl.create_default_context()) as server:
                server.login(settings.user, settings.password)
                server.sendmail(settings.user, recipients, msg.as_string())
            return

        with smtplib.SMTP(settings.host, settings.port, timeout=self.timeout_seconds) as server:
            server.ehlo()
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
            server.login(settings.user, settings.password)
            server.sendmail(settings.user, recipients, msg.as_string())


def build_notifier(config: WatchConfig) -> Notifier:
    mode = config.notify.mode
    if mode == "email":
        return EmailNotifier(config.notify.email, config.keywords, config.match_mode.value, config.window.timezone)
    if mode == "discord":
        return DiscordNotifier(config.notify.discord_webhook)
    return ConsoleNotifier()
