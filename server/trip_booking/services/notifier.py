"""
Room-available notifications for promoted waitlist users.

The engine only depends on the Notifier contract. EmailNotifier sends over
SMTP when SMTP_HOST is set; otherwise LogNotifier records the event.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from uuid import UUID

from ..core.clock import isoformat_z
from ..core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomAvailableEvent:
    """A waitlisted user now holds a room and should be told."""

    user_id: UUID
    trip_id: UUID
    destination: str
    email: str
    first_name: str
    waitlist_entry_id: int
    expires_at: datetime


class NotificationDispatchFailed(Exception):
    """A room-available notification could not be delivered."""

    def __init__(self, event: RoomAvailableEvent, reason: str):
        super().__init__(f"Notification for waitlist entry {event.waitlist_entry_id} failed: {reason}")
        self.event = event
        self.reason = reason


class Notifier(ABC):
    """Delivery channel for room-available events."""

    async def send_room_available(self, event: RoomAvailableEvent) -> None:
        """
        Deliver one event.

        Raises:
            NotificationDispatchFailed: If delivery failed for any reason
        """
        try:
            await self._deliver(event)
        except NotificationDispatchFailed:
            raise
        except Exception as e:
            raise NotificationDispatchFailed(event, str(e)) from e

    @abstractmethod
    async def _deliver(self, event: RoomAvailableEvent) -> None:
        ...


class LogNotifier(Notifier):
    """Writes the event to the log; used when no mail server is configured."""

    async def _deliver(self, event: RoomAvailableEvent) -> None:
        logger.info(
            "Room available notification",
            extra={
                "user_id": str(event.user_id),
                "trip_id": str(event.trip_id),
                "destination": event.destination,
                "waitlist_entry_id": event.waitlist_entry_id,
                "expires_at": isoformat_z(event.expires_at),
            }
        )


class EmailNotifier(Notifier):
    """Sends the notification through an SMTP relay."""

    def __init__(self, settings: Settings, timeout: float = 10.0):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = (settings.smtp_user or "").strip()
        self.password = (settings.smtp_password or "").strip()
        self.use_tls = settings.smtp_use_tls
        self.from_address = self._from_address(settings)
        self.timeout = timeout

    def _from_address(self, settings: Settings) -> str:
        if (settings.notify_from or "").strip():
            return settings.notify_from.strip()
        if self.user:
            return f"Trip Booking <{self.user}>"
        return "Trip Booking <noreply@localhost>"

    def build_message(self, event: RoomAvailableEvent) -> MIMEMultipart:
        body = (
            f"Hi {event.first_name},\n\n"
            f"A room on your waitlisted trip to {event.destination} just opened up "
            f"and has been added to your cart.\n"
            f"Complete your booking before {event.expires_at:%Y-%m-%d %H:%M} UTC "
            f"or the room goes to the next person in line.\n"
        )
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"A room is available for {event.destination}"
        msg["From"] = self.from_address
        msg["To"] = event.email
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{body}</pre>", "html"))
        return msg

    def _send(self, event: RoomAvailableEvent) -> None:
        msg = self.build_message(event)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_address, [event.email], msg.as_string())

    async def _deliver(self, event: RoomAvailableEvent) -> None:
        await asyncio.to_thread(self._send, event)
        logger.info(
            "Room available email sent",
            extra={
                "user_id": str(event.user_id),
                "trip_id": str(event.trip_id),
                "waitlist_entry_id": event.waitlist_entry_id,
            }
        )


def build_notifier(settings: Settings) -> Notifier:
    """Pick the notifier for the configured environment."""
    if settings.smtp_configured:
        return EmailNotifier(settings)
    logger.info("SMTP not configured; room-available notifications will only be logged")
    return LogNotifier()
