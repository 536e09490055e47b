"""
Platform-wide exception hierarchy.

Three families live here:

  LifecycleError   — module state machine problems (unknown module id,
                     illegal pause/resume transition).
  StoreError       — record-store failures. FeatureNotProvisionedError is
                     the soft member: the table/column does not exist yet,
                     so callers degrade to an empty result instead of failing.
  GenerationError  — generative-text provider failures, classified so the
                     caller can decide whether to retry, fall back or tell
                     the user.

Usage:
    from app.core.exceptions import UnknownModuleError, StoreUnavailableError

    raise UnknownModuleError("MOD_999")
    raise RetryExhaustedError(attempts=3, last_error=exc)
"""


# ── Lifecycle ─────────────────────────────────────────────────────────────────


class LifecycleError(Exception):
    """Base class for module lifecycle failures."""


class UnknownModuleError(LifecycleError):
    """Raised when a module id is not present in the module catalog.

    Args:
        module_id: The catalog key that was looked up.
    """

    def __init__(self, module_id: str) -> None:
        self.module_id = module_id
        super().__init__(f"Module {module_id} not found in catalog")


class WrongStateError(LifecycleError):
    """A transition was requested from a status that does not allow it.

    The lifecycle manager absorbs this (returns None and logs) for
    pause/resume; blueprints map it to HTTP 409 when it does escape.
    """

    def __init__(self, module_id: str, action: str, current: str | None) -> None:
        self.module_id = module_id
        self.action = action
        self.current = current
        super().__init__(f"Cannot '{action}' module {module_id} (status={current or 'inactive'})")


# ── Record store ──────────────────────────────────────────────────────────────


class StoreError(Exception):
    """Base class for record-store failures."""


class StoreUnavailableError(StoreError):
    """The record store could not complete a read or write.

    Args:
        operation: Short label of what was attempted (e.g. "upsert module_activations").
        cause: The underlying driver exception, kept for logging.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Record store unavailable during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class NotFoundError(StoreError):
    """Raised when a requested record does not exist for the given user.

    Args:
        resource: Human-readable record name (e.g. "ModuleActivation").
        resource_id: The key that was looked up.
        user_id: Owner scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        user_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.user_id = user_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if user_id is not None:
            msg += f" (user={user_id})"
        super().__init__(msg)


class FeatureNotProvisionedError(StoreError):
    """The backing table or column does not exist yet.

    Soft failure: module tracking and context snapshots are optional
    layers, so callers treat this as "no data" rather than an outage.
    """

    def __init__(self, table: str, cause: Exception | None = None) -> None:
        self.table = table
        self.cause = cause
        super().__init__(f"Table {table} is not provisioned")


# ── Generation ────────────────────────────────────────────────────────────────


class GenerationError(Exception):
    """Base class for generative-text provider failures.

    Args:
        message: Human-readable explanation.
        model: Model identifier the call was made against.
        status_code: HTTP-like status from the provider, when there was one.
    """

    def __init__(self, message: str, *, model: str | None = None,
                 status_code: int | None = None) -> None:
        self.model = model
        self.status_code = status_code
        super().__init__(message)


class ConnectivityError(GenerationError):
    """Network-level failure: the provider endpoint could not be reached."""


class AuthenticationError(GenerationError):
    """The provider rejected the credentials (401/403 class)."""


class MalformedRequestError(GenerationError):
    """The provider rejected the request body (422 class)."""


class MalformedResponseError(GenerationError):
    """The provider answered, but the content was empty or not parseable."""


class ProviderError(GenerationError):
    """Any other upstream failure (5xx, rate limiting, unexpected status)."""


class RetryExhaustedError(GenerationError):
    """Every attempt allowed by the retry policy failed.

    Args:
        attempts: Number of attempts actually made.
        last_error: The final failure; its type tells the caller which
            class of problem ended the loop.
    """

    def __init__(self, attempts: int, last_error: Exception | None = None,
                 *, model: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        status = getattr(last_error, "status_code", None)
        msg = f"Generation failed after {attempts} attempt(s)"
        if last_error is not None:
            msg += f": {last_error}"
        super().__init__(msg, model=model, status_code=status)

    @property
    def reason(self) -> str:
        """Classification of the last error: connectivity, authentication, ..."""
        return classify_generation_error(self.last_error)


def classify_generation_error(error: Exception | None) -> str:
    """Map a generation failure to a short, stable label for logs and APIs."""
    if isinstance(error, ConnectivityError):
        return "connectivity"
    if isinstance(error, AuthenticationError):
        return "authentication"
    if isinstance(error, MalformedRequestError):
        return "malformed_request"
    if isinstance(error, MalformedResponseError):
        return "malformed_response"
    if isinstance(error, RetryExhaustedError):
        return classify_generation_error(error.last_error)
    if error is None:
        return "unknown"
    return "provider"
