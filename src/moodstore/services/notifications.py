"""
Notification dispatch interface.

The store never talks to a messaging service itself. A dispatcher receives
the tenant's config (credentials, contacts) and the global templates, sends
what it can, and returns the contacts it actually reached. That list is
persisted verbatim in the check-in's auto_notifications.
"""

from datetime import datetime
from typing import Protocol

from moodstore.core.config import get_logger
from moodstore.core.types import Checkin, GlobalConfig, TenantConfig

logger = get_logger("services.notifications")

TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M"


class NotificationDispatcher(Protocol):
    """Anything that can alert a tenant's contacts."""

    def send_low_mood(
        self,
        tenant_cfg: TenantConfig,
        global_cfg: GlobalConfig,
        checkin: Checkin,
    ) -> list[str]:
        """Alert contacts about a low mood. Returns the contacts reached."""
        ...

    def send_panic(
        self,
        tenant_cfg: TenantConfig,
        global_cfg: GlobalConfig,
        checkin: Checkin | None,
    ) -> list[str]:
        """Alert contacts about a panic. Returns the contacts reached."""
        ...


class NullDispatcher:
    """Dispatcher used when no messaging transport is configured. Reaches nobody."""

    def send_low_mood(self, tenant_cfg: TenantConfig, global_cfg: GlobalConfig, checkin: Checkin) -> list[str]:
        logger.debug(f"No dispatcher configured, low-mood alert for {tenant_cfg.username} dropped")
        return []

    def send_panic(self, tenant_cfg: TenantConfig, global_cfg: GlobalConfig, checkin: Checkin | None) -> list[str]:
        logger.debug(f"No dispatcher configured, panic alert for {tenant_cfg.username} dropped")
        return []


def render_template(
    template: str,
    tenant_cfg: TenantConfig,
    checkin: Checkin | None,
    timestamp: datetime,
) -> str:
    """
    Fill a message template.

    Placeholders: {username} (the display name), {mood}, {intensity} and
    {timestamp}. Without a check-in, mood renders as "unknown" and intensity
    as "0".
    """
    replacements = {
        "{username}": tenant_cfg.display_name or tenant_cfg.username,
        "{mood}": str(checkin.mood) if checkin else "unknown",
        "{intensity}": str(checkin.intensity) if checkin else "0",
        "{timestamp}": timestamp.strftime(TIMESTAMP_FORMAT),
    }
    message = template
    for placeholder, value in replacements.items():
        message = message.replace(placeholder, value)
    return message


def merge_contacts(*contact_lists: list[str]) -> list[str]:
    """Union of contact lists, keeping first-seen order."""
    merged: list[str] = []
    for contacts in contact_lists:
        for contact in contacts:
            if contact not in merged:
                merged.append(contact)
    return merged
