"""
Sigma Business Automation
Module Lifecycle Manager.

Owns one user's module activation records and sub-module completions:

    activate            → create / re-enter "active" (restart if completed)
    update_progress     → clamp, merge metadata, complete at 100
    pause / resume      → active ⇄ paused, anything else is a logged no-op
    complete_sub_module → upsert checkpoint, recompute required-only progress
    check_dependencies  → every catalog dependency has a completed record

Each mutation commits before the next step reads, so a sub-module upsert is
durable before progress is recomputed, and the progress write is durable
before the context snapshot is regenerated.

The in-memory working set (``self.modules``) is only replaced from a row
after its commit succeeded; a failed write leaves it untouched.
"""

import logging
import math
from datetime import datetime, timezone

from app.core.exceptions import (
    FeatureNotProvisionedError,
    StoreError,
    UnknownModuleError,
    WrongStateError,
)
from app.models import db
from app.models.module import MODULE_TRANSITIONS, ModuleActivation, SubModuleCompletion, as_utc
from app.services.module_catalog import default_catalog
from app.services.module_metadata import merge_metadata
from app.services.record_store import read_or_empty, store_operation, upsert

logger = logging.getLogger(__name__)

_TABLE = "module_activations"
_SUB_TABLE = "sub_module_completions"


def clamp_progress(value) -> int:
    """Coerce to int and clamp to [0, 100].

    Raises ValueError for NaN and infinities.
    """
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"progress must be finite, got {value!r}")
    return max(0, min(100, int(number)))


class ModuleLifecycleService:
    """
    Per-user module state machine over the record store.

    Args:
        user_id: Owner of every record this instance touches.
        catalog: ModuleCatalog used for lookups and dependency checks.
        context_service: Optional ContextSynthesisService; when given together
            with ``profile_provider`` the snapshot is refreshed after a module
            reaches "completed".
        profile_provider: ``callable(user_id) -> profile mapping or None``;
            no refresh happens without a profile.
        clock: ``callable() -> aware datetime``; defaults to UTC now.
    """

    def __init__(self, user_id: str, *, catalog=None, context_service=None,
                 profile_provider=None, clock=None):
        self.user_id = user_id
        self.catalog = catalog or default_catalog
        self.context_service = context_service
        self.profile_provider = profile_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.modules: dict[str, dict] = {}
        self._loaded = False

    # ── Loading ──────────────────────────────────────────────────────────

    def fetch_modules(self) -> list[dict]:
        """Load every activation record of the user into the working set."""
        rows = read_or_empty(
            lambda: (ModuleActivation.query
                     .filter_by(user_id=self.user_id)
                     .order_by(ModuleActivation.id)
                     .all()),
            table=_TABLE,
            operation="fetch module activations",
        )
        self.modules = {row.module_id: row.to_dict() for row in rows}
        self._loaded = True
        return list(self.modules.values())

    def refetch(self) -> list[dict]:
        return self.fetch_modules()

    def _ensure_loaded(self):
        if not self._loaded:
            self.fetch_modules()

    def _row(self, module_id: str) -> ModuleActivation | None:
        return ModuleActivation.query.filter_by(user_id=self.user_id, module_id=module_id).first()

    def _touch(self, row: ModuleActivation, now: datetime):
        previous = as_utc(row.last_activity)
        row.last_activity = now if previous is None or now > previous else previous

    def _remember(self, row: ModuleActivation) -> dict:
        snapshot = row.to_dict()
        self.modules[row.module_id] = snapshot
        return snapshot

    # ── Mutations ────────────────────────────────────────────────────────

    def activate(self, module_id: str, extra_metadata: dict | None = None) -> dict | None:
        """Create or re-enter the "active" state for ``module_id``.

        Re-activating a completed module restarts it from progress 0.
        Raises UnknownModuleError when the id is not in the catalog; returns
        None when the activation table is not provisioned.
        """
        definition = self.catalog.get(module_id)
        if definition is None:
            raise UnknownModuleError(module_id)

        now = self._clock()
        try:
            with store_operation("activate module", table=_TABLE):
                row = self._row(module_id)
                if row is None:
                    seed = merge_metadata(extra_metadata, {
                        "category": definition.category,
                        "estimated_time": definition.estimated_time,
                    })
                    row = ModuleActivation(
                        user_id=self.user_id,
                        module_id=module_id,
                        module_name=definition.display_name,
                        status="active",
                        progress=0,
                        meta=seed,
                        outputs={},
                        activated_at=now,
                        last_activity=now,
                    )
                    db.session.add(row)
                else:
                    if row.status == "completed":
                        logger.info("Restarting completed module %s", module_id,
                                    extra={"user_id": self.user_id, "module_id": module_id})
                        row.progress = 0
                        row.completed_at = None
                    row.status = "active"
                    row.meta = merge_metadata(row.meta, extra_metadata)
                    self._touch(row, now)
                db.session.commit()
        except FeatureNotProvisionedError:
            self._not_provisioned("activate", module_id)
            return None

        logger.info("Module %s activated", module_id,
                    extra={"user_id": self.user_id, "module_id": module_id})
        return self._remember(row)

    def update_progress(self, module_id: str, progress, extra_metadata: dict | None = None) -> dict | None:
        """Set clamped progress; 100 completes the module.

        Returns the updated record, or None when the user has no record for
        the module (nothing was activated yet, or the table is absent).
        """
        value = clamp_progress(progress)
        now = self._clock()

        try:
            with store_operation("update module progress", table=_TABLE):
                row = self._row(module_id)
                if row is None:
                    logger.info("No activation record for %s, progress ignored", module_id,
                                extra={"user_id": self.user_id, "module_id": module_id})
                    return None

                became_completed = value == 100 and row.status != "completed"
                row.progress = value
                if extra_metadata:
                    row.meta = merge_metadata(row.meta, extra_metadata)
                if value == 100:
                    row.status = "completed"
                    if became_completed:
                        row.completed_at = now
                elif row.status == "completed":
                    # keep progress == 100 <=> completed
                    row.status = "active"
                    row.completed_at = None
                self._touch(row, now)
                db.session.commit()
        except FeatureNotProvisionedError:
            self._not_provisioned("update progress", module_id)
            return None

        snapshot = self._remember(row)
        if became_completed:
            logger.info("Module %s completed", module_id,
                        extra={"user_id": self.user_id, "module_id": module_id})
            self._refresh_context()
        return snapshot

    def pause(self, module_id: str) -> dict | None:
        return self._transition(module_id, "pause")

    def resume(self, module_id: str) -> dict | None:
        return self._transition(module_id, "resume")

    def _transition(self, module_id: str, action: str) -> dict | None:
        rule = MODULE_TRANSITIONS[action]
        try:
            with store_operation(f"{action} module", table=_TABLE):
                row = self._row(module_id)
                current = row.status if row else None
                if current not in rule["from"]:
                    logger.info("%s", WrongStateError(module_id, action, current),
                                extra={"user_id": self.user_id, "module_id": module_id})
                    return None
                row.status = rule["to"]
                self._touch(row, self._clock())
                db.session.commit()
        except FeatureNotProvisionedError:
            self._not_provisioned(action, module_id)
            return None
        return self._remember(row)

    def complete_sub_module(self, module_id: str, sub_module_id: str, data: dict | None = None) -> bool:
        """Record a sub-module checkpoint and recompute module progress.

        Repeat completion overwrites ``data`` and ``completed_at``. Progress
        is only recomputed for modules that declare sub-modules. Returns
        False when the completion table is not provisioned.
        """
        definition = self.catalog.get(module_id)
        if definition is None:
            raise UnknownModuleError(module_id)

        try:
            with store_operation("upsert sub-module completion", table=_SUB_TABLE):
                upsert(
                    SubModuleCompletion,
                    {"user_id": self.user_id, "sub_module_id": sub_module_id},
                    {"module_id": module_id, "data": dict(data or {}), "completed_at": self._clock()},
                )
                db.session.commit()
        except FeatureNotProvisionedError:
            self._not_provisioned("complete sub-module", module_id)
            return False

        if definition.sub_modules:
            completed_ids = self.get_completed_sub_modules(module_id)
            progress = self.catalog.module_progress(module_id, completed_ids)
            self.update_progress(module_id, progress, {"completed_sub_modules": completed_ids})
        return True

    def _not_provisioned(self, action: str, module_id: str):
        logger.info("Module tracking not provisioned, %s %s skipped", action, module_id,
                    extra={"user_id": self.user_id, "module_id": module_id})

    def _refresh_context(self):
        """Best-effort snapshot refresh; never fails the calling mutation."""
        if self.context_service is None or self.profile_provider is None:
            return
        try:
            profile = self.profile_provider(self.user_id)
            if not profile:
                logger.debug("No profile for user %s, context not refreshed", self.user_id)
                return
            self.fetch_modules()
            self.context_service.update_user_context(
                self.user_id, profile, modules=list(self.modules.values()))
        except Exception as exc:
            logger.warning("Context refresh failed for user %s: %s", self.user_id, exc,
                           extra={"user_id": self.user_id})

    # ── Queries ──────────────────────────────────────────────────────────

    def get_completed_sub_modules(self, module_id: str) -> list[str]:
        try:
            rows = read_or_empty(
                lambda: (SubModuleCompletion.query
                         .filter_by(user_id=self.user_id, module_id=module_id)
                         .order_by(SubModuleCompletion.id)
                         .all()),
                table=_SUB_TABLE,
            )
        except StoreError as exc:
            logger.warning("Could not read sub-module completions for %s: %s", module_id, exc)
            return []
        return [row.sub_module_id for row in rows]

    def check_dependencies(self, module_id: str) -> bool:
        """True iff every dependency of ``module_id`` has a completed record."""
        definition = self.catalog.get(module_id)
        if definition is None:
            raise UnknownModuleError(module_id)
        if not definition.dependencies:
            return True
        self._ensure_loaded()
        return all(self.get_module_status(dep) == "completed" for dep in definition.dependencies)

    def get_module(self, module_id: str) -> dict | None:
        self._ensure_loaded()
        return self.modules.get(module_id)

    def get_module_status(self, module_id: str) -> str:
        module = self.get_module(module_id)
        return module["status"] if module else "inactive"

    def get_module_progress(self, module_id: str) -> int:
        module = self.get_module(module_id)
        return module["progress"] if module else 0

    def get_active_modules(self) -> list[dict]:
        self._ensure_loaded()
        return [m for m in self.modules.values() if m["status"] == "active"]

    def get_completed_modules(self) -> list[dict]:
        self._ensure_loaded()
        return [m for m in self.modules.values() if m["status"] == "completed"]

    def next_modules(self) -> list:
        """Catalog modules unlocked by the current completed set."""
        completed = [m["module_id"] for m in self.get_completed_modules()]
        return self.catalog.next_modules(completed)


__all__ = ["ModuleLifecycleService", "clamp_progress"]
