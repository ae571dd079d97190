"""
Journal - the write flows of the mood tracker.

Composes the DocumentStore, the VersionLedger and a NotificationDispatcher
the way a request handler does:

1. build the document
2. notify contacts if a trigger fires
3. persist the document (atomic write; errors propagate)
4. snapshot the change in the ledger (errors are logged, never raised)

A document counts as saved once step 3 returns. A failed snapshot only means
the audit trail lags behind until the next successful commit.
"""
from collections.abc import Callable

from moodstore.core.config import get_logger
from moodstore.core.errors import NotFoundError, VersionControlError
from moodstore.core.types import (
    AutoNotifications,
    Checkin,
    CheckinSubmission,
    GlobalConfig,
    PanicEvent,
    Principal,
    SafetyAnswer,
    TenantConfig,
)
from moodstore.services.notifications import (
    NotificationDispatcher,
    NullDispatcher,
    merge_contacts,
)
from moodstore.storage.documents import DocumentStore
from moodstore.storage.ledger import VersionLedger

logger = get_logger("services.journal")


class Journal:
    """Write-side façade over the document store and the version ledger."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: VersionLedger,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.dispatcher = dispatcher or NullDispatcher()

    def boot(self) -> None:
        """Scaffold the document tree and make sure the ledger exists."""
        self.store.ensure_structure()
        self.ledger.init_repository_if_needed()

    # ============================================
    # Ledger
    # ============================================

    def snapshot(self, message: str) -> str | None:
        """
        Commit pending changes, downgrading ledger failures to a warning.

        Returns the commit hash, or None if nothing was committed.
        """
        try:
            return self.ledger.commit_pending_changes(message)
        except VersionControlError as e:
            logger.warning(f"Ledger snapshot '{message}' failed: {e}")
            return None

    # ============================================
    # Tenants
    # ============================================

    def register_tenant(self, principal: Principal, display_name: str | None = None) -> TenantConfig:
        """Scaffold a tenant. Re-registering returns the existing config unchanged."""
        cfg = self.store.ensure_tenant_scaffold(principal.tenant_id, display_name or principal.username)
        self.snapshot(f"chore: scaffold tenant {principal.username}")
        return cfg

    def tenant_config(self, principal: Principal) -> TenantConfig:
        """The tenant's config, or an unsaved default if it was never scaffolded."""
        try:
            return self.store.load_tenant_config(principal.tenant_id)
        except NotFoundError:
            return TenantConfig.for_new_tenant(principal.username)

    def update_tenant_config(self, principal: Principal, cfg: TenantConfig) -> None:
        self.store.save_tenant_config(principal.tenant_id, cfg)
        self.snapshot(f"chore: settings updated for {principal.username}")

    def update_global_config(self, cfg: GlobalConfig) -> None:
        self.store.save_global_config(cfg)
        self.snapshot("chore: global settings updated")

    # ============================================
    # Check-ins
    # ============================================

    def submit_checkin(self, principal: Principal, submission: CheckinSubmission) -> Checkin:
        """
        Record a new check-in.

        A low-mood alert fires when the tenant has auto-notify enabled and
        the mood is below its threshold; a panic alert fires when the safety
        answer is "panic". Both can fire for the same check-in. Each flag is
        set only if its alert reached somebody; contacts are unioned.
        """
        checkin = submission.to_checkin(principal.tenant_id)
        global_cfg = self.store.load_global_config()
        tenant_cfg = self.tenant_config(principal)

        notifications = AutoNotifications()

        if tenant_cfg.auto_notify_on_low_mood and checkin.mood < tenant_cfg.notify_threshold:
            reached = self._dispatch("low-mood", self.dispatcher.send_low_mood, tenant_cfg, global_cfg, checkin)
            if reached:
                notifications.mood_threshold_triggered = True
                notifications.notified_contacts = merge_contacts(notifications.notified_contacts, reached)

        if submission.safety_answer == SafetyAnswer.PANIC:
            reached = self._dispatch("panic", self.dispatcher.send_panic, tenant_cfg, global_cfg, checkin)
            if reached:
                notifications.panic_triggered = True
                notifications.notified_contacts = merge_contacts(notifications.notified_contacts, reached)

        checkin.auto_notifications = notifications
        self.store.save_checkin(principal.tenant_id, checkin)
        self.snapshot(f"feat: new check-in for {principal.username}")
        return checkin

    # ============================================
    # Panic button
    # ============================================

    def trigger_panic(self, principal: Principal) -> PanicEvent:
        """Alert contacts using the latest check-in as context and log the event."""
        global_cfg = self.store.load_global_config()
        tenant_cfg = self.tenant_config(principal)
        last_checkin = self.store.latest_checkin(principal.tenant_id)

        reached = self._dispatch("panic", self.dispatcher.send_panic, tenant_cfg, global_cfg, last_checkin)

        event = PanicEvent(
            tenant_id=principal.tenant_id,
            mood_at_panic=last_checkin.mood if last_checkin else None,
            intensity_at_panic=last_checkin.intensity if last_checkin else None,
            notified_contacts=reached,
        )
        self.store.save_panic_event(event)
        self.snapshot(f"feat: panic event for {principal.username}")
        return event

    def _dispatch(
        self,
        kind: str,
        send: Callable[..., list[str]],
        tenant_cfg: TenantConfig,
        global_cfg: GlobalConfig,
        checkin: Checkin | None,
    ) -> list[str]:
        try:
            reached = list(send(tenant_cfg, global_cfg, checkin))
        except Exception as e:
            logger.warning(f"Sending {kind} notification for {tenant_cfg.username} failed: {e}")
            return []
        if reached:
            logger.info(f"Sent {kind} notification to {len(reached)} contact(s)")
        return reached
