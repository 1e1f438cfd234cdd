"""
Reservation Boss - Outbound Email
==================================

Fire-and-forget delivery through the configured SMTP relay. Messages are
handed to a small thread pool; callers never wait on, or fail because of,
the mail relay. Every failure is logged and dropped.
"""

import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from typing import Optional

from config import Settings
from logging_config import get_logger

logger = get_logger(__name__)

FOOTER = "This is an automated message from Reservation Boss. Please do not reply to this email."


class Mailer:
    """Builds and asynchronously sends the application's emails."""

    def __init__(self, settings: Settings, max_workers: int = 2):
        self.settings = settings
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mailer")

    @property
    def configured(self) -> bool:
        s = self.settings
        return bool(s.smtp_host and s.smtp_port and s.smtp_user and s.smtp_password and self.sender)

    @property
    def sender(self) -> str:
        return self.settings.smtp_from or self.settings.smtp_user

    # ==========================================
    # MESSAGES
    # ==========================================

    def send_reservation_confirmation(self, email: str, spot: str, date: str) -> Optional[Future]:
        text = (
            "Your parking spot has been successfully reserved:\n\n"
            f"  Parking Spot: {spot}\n"
            f"  Date: {date}\n"
            f"  Email: {email}\n\n"
            "Please arrive on time and park only in your designated spot.\n\n"
            f"{FOOTER}\n"
        )
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #2563eb;">Parking Reservation Confirmed</h2>
          <p>Your parking spot has been successfully reserved:</p>
          <ul style="background: #f3f4f6; padding: 20px; border-radius: 8px;">
            <li><strong>Parking Spot:</strong> {spot}</li>
            <li><strong>Date:</strong> {date}</li>
            <li><strong>Email:</strong> {email}</li>
          </ul>
          <p>Please arrive on time and park only in your designated spot.</p>
          <p style="color: #6b7280; font-size: 12px;">{FOOTER}</p>
        </div>
        """
        message = self._build(email, "Parking Reservation Confirmation - Reservation Boss", text, html)
        return self._submit(message)

    def send_cancellation_code(self, email: str, code: str, spot: str, date: str) -> Optional[Future]:
        minutes = self.settings.cancellation_code_ttl_minutes
        text = (
            f"Your cancellation code is: {code}\n\n"
            f"It cancels your reservation of {spot} on {date}.\n"
            f"The code expires in {minutes} minutes. Do not share it with anyone.\n\n"
            f"{FOOTER}\n"
        )
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #dc2626;">Reservation Cancellation Code</h2>
          <p>Use this code to cancel your reservation of <strong>{spot}</strong> on <strong>{date}</strong>:</p>
          <p style="font-size: 32px; letter-spacing: 8px; font-weight: bold;">{code}</p>
          <p>The code expires in {minutes} minutes.</p>
          <p style="color: #6b7280; font-size: 12px;">{FOOTER}</p>
        </div>
        """
        message = self._build(email, "Parking Reservation Cancellation Code - Reservation Boss", text, html)
        return self._submit(message)

    # ==========================================
    # DELIVERY
    # ==========================================

    def _build(self, to_email: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{self.settings.smtp_from_name} <{self.sender}>"
        message["To"] = to_email
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    def _submit(self, message: EmailMessage) -> Optional[Future]:
        if not self.configured:
            logger.warning(f"SMTP not configured, email to {message['To']} not sent")
            return None
        try:
            future = self._executor.submit(self._deliver, message)
        except RuntimeError as e:
            logger.error(f"Email to {message['To']} not queued: {e}")
            return None
        future.add_done_callback(self._log_outcome)
        return future

    def _deliver(self, message: EmailMessage) -> str:
        s = self.settings
        if s.smtp_port == 465:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=ssl.create_default_context()) as server:
                server.login(s.smtp_user, s.smtp_password)
                server.send_message(message)
        else:
            with smtplib.SMTP(s.smtp_host, s.smtp_port) as server:
                server.starttls(context=ssl.create_default_context())
                server.login(s.smtp_user, s.smtp_password)
                server.send_message(message)
        return message["To"]

    @staticmethod
    def _log_outcome(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Email sending failed", exc_info=error)
        else:
            logger.info(f"Email sent to {future.result()}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
