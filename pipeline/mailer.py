"""
SMTP delivery of the rendered report.

One multipart/alternative message (plain text + HTML) is sent to all
recipients in a single SMTP transaction. Transport errors surface as
DeliveryFailure; there is no retry here, the next scheduled run is the retry.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid, parseaddr

from config import Config
from errors import ConfigurationError, DeliveryFailure

logger = logging.getLogger(__name__)


class SmtpMailer:
    """Sends alert emails through the configured SMTP server."""

    def __init__(self, config: Config) -> None:
        missing = [
            name for name, value in (
                ("SMTP_HOST", config.smtp_host),
                ("SMTP_PORT", config.smtp_port),
                ("SMTP_USER", config.smtp_user),
                ("SMTP_PASS", config.smtp_password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"SMTP config missing: {'/'.join(missing)}")
        self.config = config

    def build_message(self, to: list[str], subject: str, text: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.config.sender
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        address = parseaddr(self.config.sender)[1]
        domain = address.rsplit("@", 1)[-1] if "@" in address else None
        msg["Message-ID"] = make_msgid(domain=domain)
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: list[str], subject: str, text: str, html: str) -> str:
        """Send the report and return its Message-ID."""
        if not to:
            raise DeliveryFailure("No recipients given")

        msg = self.build_message(to, subject, text, html)
        host, port = self.config.smtp_host, self.config.smtp_port
        timeout = self.config.smtp_timeout_seconds
        logger.info("Sending '%s' to %d recipient(s) via %s:%d", subject, len(to), host, port)

        try:
            if self.config.smtp_secure:
                server = smtplib.SMTP_SSL(host, port, timeout=timeout,
                                          context=ssl.create_default_context())
            else:
                server = smtplib.SMTP(host, port, timeout=timeout)
            with server:
                if not self.config.smtp_secure:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls(context=ssl.create_default_context())
                        server.ehlo()
                server.login(self.config.smtp_user, self.config.smtp_password)
                refused = server.send_message(msg, to_addrs=to)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailure(f"SMTP delivery to {host}:{port} failed: {exc}") from exc

        if refused:
            logger.warning("Recipients refused by server: %s", ", ".join(refused))
        logger.info("Email sent. messageId=%s recipients=%s", msg["Message-ID"], ", ".join(to))
        return msg["Message-ID"]
