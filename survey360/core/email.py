import smtplib
from contextlib import contextmanager
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path
from typing import Generator

from jinja2 import Environment, FileSystemLoader, select_autoescape

from survey360.core.config import settings
from survey360.core.logger import get_logger

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates" / "email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_email(template_name: str, **context) -> str:
    return _env.get_template(template_name).render(**context)


class EmailSender:
    """SMTP sender. `send_email` never raises; failures come back as False."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_tls: bool,
        from_address: str,
        from_name: str,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.from_name = from_name

    @classmethod
    def from_settings(cls) -> "EmailSender":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            from_address=settings.EMAIL_FROM,
            from_name=settings.EMAIL_FROM_NAME,
        )

    @contextmanager
    def _smtp_connection(self) -> Generator[smtplib.SMTP, None, None]:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            yield server

    def _build_message(self, recipient: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def send_email(self, recipient: str, subject: str, html_body: str) -> bool:
        message = self._build_message(recipient, subject, html_body)
        try:
            with self._smtp_connection() as server:
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", recipient, exc)
            return False
        logger.info("Email sent to %s: %s", recipient, subject)
        return True


def get_email_sender() -> EmailSender:
    return EmailSender.from_settings()
