"""
Notification handling for the Ticketmaster Resale Watch.
"""
import asyncio
import logging
from typing import List, Optional

import httpx

from .models import Notification, NotificationConfig, NotifyTarget, TicketAvailabilityReport

logger = logging.getLogger(__name__)

DISCORD_API_URL = "https://discord.com/api/v10"
NTFY_BASE_URL = "https://ntfy.sh"


def format_report_message(report: TicketAvailabilityReport, target: Optional[NotifyTarget] = None) -> str:
    """Render a report as a chat message, pinging the target's users first."""
    lines = []
    if target and target.user_ids:
        lines.append(target.mentions)
        lines.append("")
    lines.extend([
        "**RESALE TICKETS AVAILABLE**",
        f"Total tickets: **{report.total_tickets}**",
        f"Sellers: {report.offer_count}",
        f"Max tickets from one seller: {report.max_bundle_size}",
        f"Cheapest: **{report.cheapest_price:.2f} NOK** "
        f"(quantities: {', '.join(str(q) for q in report.cheapest_quantities)})",
        report.event_url,
    ])
    return "\n".join(lines)


class NotificationService:
    """Base class for notification services."""

    def __init__(self, config: NotificationConfig):
        self.config = config
        self.retry_attempts = config.retry_attempts
        self.retry_delay = config.retry_delay

    async def send(self, notification: Notification) -> bool:
        """Send a notification with retry logic."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self._send_impl(notification)
            except Exception as e:
                if attempt == self.retry_attempts:
                    logger.error(
                        f"Failed to send notification after {self.retry_attempts} attempts: {e}"
                    )
                    return False

                delay = self.retry_delay * attempt
                logger.warning(
                    f"Attempt {attempt}/{self.retry_attempts} failed. Retrying in {delay}s... Error: {e}"
                )
                await asyncio.sleep(delay)

        return False

    async def _send_impl(self, notification: Notification) -> bool:
        """Implementation of the notification sending logic."""
        raise NotImplementedError("Subclasses must implement this method")


class DiscordNotificationService(NotificationService):
    """Posts messages to the target's Discord channel as a bot."""

    def __init__(self, token: str, **kwargs):
        super().__init__(**kwargs)
        self.token = token

    async def _send_impl(self, notification: Notification) -> bool:
        if not notification.target or not notification.target.channel_id:
            logger.warning("Discord notification has no channel, skipping")
            return False

        url = f"{DISCORD_API_URL}/channels/{notification.target.channel_id}/messages"
        headers = {"Authorization": f"Bot {self.token}"}
        payload = {
            "content": notification.message,
            "allowed_mentions": {"users": list(notification.target.user_ids)},
        }
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return True


class NtfyNotificationService(NotificationService):
    """Notification service for ntfy.sh."""

    def __init__(self, topic: str, **kwargs):
        super().__init__(**kwargs)
        self.topic = topic
        self.base_url = f"{NTFY_BASE_URL}/{self.topic}"

    async def _send_impl(self, notification: Notification) -> bool:
        """Send notification via ntfy.sh."""
        # Headers must stay ASCII, the title is fixed for that reason
        headers = {
            "Title": "Ticketmaster Resale Tickets Available",
            "Priority": str(notification.priority),
        }
        if notification.tags:
            headers["Tags"] = ",".join(notification.tags)
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                self.base_url,
                data=notification.message.encode("utf-8"),
                headers=headers
            )
            response.raise_for_status()
            return True


class NotificationManager:
    """Delivers availability reports through every configured service."""

    def __init__(self, config: NotificationConfig):
        self.config = config
        self.services: List[NotificationService] = []
        self._setup_services()

    def _setup_services(self) -> None:
        """Set up notification services based on config."""
        if not self.config.enabled:
            logger.warning("Notifications are disabled in config")
            return

        if self.config.discord_token:
            self.services.append(DiscordNotificationService(
                token=self.config.discord_token,
                config=self.config
            ))
        if self.config.ntfy_topic:
            self.services.append(NtfyNotificationService(
                topic=self.config.ntfy_topic,
                config=self.config
            ))
        if not self.services:
            logger.warning("No valid notification service configured")

    async def send(self, target: NotifyTarget, report: TicketAvailabilityReport) -> bool:
        """Send a report to ``target`` using all available services."""
        notification = Notification(
            title="Resale Tickets Available!",
            message=format_report_message(report, target),
            target=target,
            priority=5,
            tags=["ticket", "warning"],
        )
        return await self.send_notification(notification)

    async def send_notification(self, notification: Notification) -> bool:
        if not self.services:
            logger.warning("No notification services configured")
            return False

        results = await asyncio.gather(
            *(service.send(notification) for service in self.services),
            return_exceptions=True
        )

        # Log any failures
        for service, result in zip(self.services, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Error sending notification via {service.__class__.__name__}: {result}",
                    exc_info=result
                )

        return any(not isinstance(r, Exception) and r for r in results)


def create_notification_manager(config: NotificationConfig) -> NotificationManager:
    """Create a notification manager with the given config."""
    return NotificationManager(config)
