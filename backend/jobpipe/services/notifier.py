from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Protocol

import httpx

from jobpipe.core.config import settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_alert(self, subject: str, body: str) -> tuple[bool, str]: ...


def build_failure_alert(run: dict) -> tuple[str, str]:
    """Subject and body for a run that ended in ScrapeFailed or ClassifyFailed."""
    state = run["state"]
    subject = f"[jobpipe] {run['employer']} pipeline FAILED ({state})"
    lines = [
        f"Employer: {run['employer']}",
        f"Exit state: {state}",
        f"Exit code: {run.get('exit_code', 'N/A')}",
        f"Run id: {run.get('run_id', 'N/A')}",
        f"Time: {run['timestamp']}",
        f"Host: {run['host']}",
    ]
    if run.get("error"):
        lines.append(f"Error: {run['error']}")
    if state == "ScrapeFailed":
        lines.append("Classification was skipped. No classification charges were incurred.")
    else:
        lines.append(
            f"Classification: successful={run.get('classified', 0)} failed={run.get('classify_failed', 0)} "
            f"cost=${run.get('cost', 0.0):.4f}"
        )
        lines.append("Persisted records were kept; unclassified jobs stay pending for the next run.")
    if run.get("log_path"):
        lines.append(f"Log file: {run['log_path']}")
    lines.extend(["", "Last log lines:", *(run.get("log_tail") or ["(no log output)"])])
    return subject, "\n".join(lines)


def build_summary_alert(run: dict) -> tuple[str, str]:
    subject = f"[jobpipe] {run['employer']} pipeline done"
    lines = [
        f"Employer: {run['employer']}",
        f"Run id: {run.get('run_id', 'N/A')}",
        f"Time: {run['timestamp']}",
        f"Host: {run['host']}",
        f"Listings seen: {run.get('seen', 0)}",
        f"Inserted: {run.get('inserted', 0)} | Updated: {run.get('updated', 0)} | Unchanged: {run.get('unchanged', 0)}",
        f"Rejected: {run.get('rejected', 0)}",
        f"Classified: {run.get('classified', 0)} | Failed: {run.get('classify_failed', 0)} "
        f"| Activated: {run.get('activated', 0)}",
        f"Estimated classification cost: ${run.get('cost', 0.0):.4f}",
        f"URLs announced: {run.get('announced', 0)}",
    ]
    return subject, "\n".join(lines)


class WebhookNotifier:
    """Posts alerts to a Discord-compatible webhook, split into message-sized chunks."""

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    @staticmethod
    def _split_lines(lines: list[str], max_len: int = 1900) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        current_len = 0

        for raw_line in lines:
            line = raw_line
            if len(line) > max_len:
                line = f"{line[: max_len - 3]}..."

            extra_len = len(line) if not current else len(line) + 1
            if current and (current_len + extra_len > max_len):
                chunks.append("\n".join(current))
                current = [line]
                current_len = len(line)
            else:
                current.append(line)
                current_len += extra_len

        if current:
            chunks.append("\n".join(current))
        return chunks

    @classmethod
    def build_payloads(cls, subject: str, body: str) -> list[dict]:
        return [{"content": chunk} for chunk in cls._split_lines([f"**{subject}**", *body.splitlines()])]

    def send_alert(self, subject: str, body: str) -> tuple[bool, str]:
        if not self.webhook_url:
            return False, "webhook not configured"
        try:
            with httpx.Client(timeout=20) as client:
                for payload in self.build_payloads(subject, body):
                    resp = client.post(self.webhook_url, json=payload)
                    if resp.status_code >= 300:
                        return False, f"webhook status={resp.status_code} body={resp.text[:300]}"
            return True, "ok"
        except Exception as exc:  # noqa: BLE001
            return False, str(exc)


class EmailNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        to_addr: str,
        from_addr: str = "",
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.to_addr = to_addr
        self.from_addr = from_addr or username
        self.username = username
        self.password = password
        self.timeout = timeout

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = self.to_addr
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=(self.from_addr.split("@")[-1] or None))
        msg.set_content(body)
        return msg

    def send_alert(self, subject: str, body: str) -> tuple[bool, str]:
        if not self.host or not self.to_addr:
            return False, "smtp not configured"
        msg = self.build_message(subject, body)
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=ssl.create_default_context())
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls(context=ssl.create_default_context())
                        server.ehlo()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
            return True, "ok"
        except (smtplib.SMTPException, OSError) as exc:
            return False, f"smtp error: {exc}"


class LoggingNotifier:
    def send_alert(self, subject: str, body: str) -> tuple[bool, str]:
        logger.info("ALERT %s\n%s", subject, body)
        return True, "logged"


class MultiNotifier:
    def __init__(self, notifiers: list[Notifier]):
        self.notifiers = notifiers

    def send_alert(self, subject: str, body: str) -> tuple[bool, str]:
        results = [n.send_alert(subject, body) for n in self.notifiers]
        ok = any(r[0] for r in results)
        return ok, "; ".join(msg for _, msg in results)


def safe_send(notifier: Notifier, subject: str, body: str) -> bool:
    try:
        ok, msg = notifier.send_alert(subject, body)
    except Exception as exc:  # noqa: BLE001
        ok, msg = False, str(exc)
    if not ok:
        logger.warning("alert %r not delivered: %s", subject, msg)
    return ok


def build_notifier() -> Notifier:
    notifiers: list[Notifier] = []
    if settings.alert_webhook_url:
        notifiers.append(WebhookNotifier(settings.alert_webhook_url))
    if settings.smtp_host and settings.admin_email:
        notifiers.append(
            EmailNotifier(
                host=settings.smtp_host,
                port=settings.smtp_port,
                to_addr=settings.admin_email,
                from_addr=settings.smtp_from,
                username=settings.smtp_username,
                password=settings.smtp_password,
            )
        )
    if not notifiers:
        return LoggingNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)
