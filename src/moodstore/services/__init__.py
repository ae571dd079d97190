"""
Services - caller-side flows built on the storage layer.
"""

from moodstore.services.journal import Journal
from moodstore.services.notifications import (
    NotificationDispatcher,
    NullDispatcher,
    merge_contacts,
    render_template,
)

__all__ = [
    "Journal",
    "NotificationDispatcher",
    "NullDispatcher",
    "merge_contacts",
    "render_template",
]
