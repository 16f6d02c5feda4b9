"""
Error taxonomy for the PO store.

Every mutation entry point reports failures by raising one of these; the
download log is the only component that logs and swallows its own errors.
"""


class POStoreError(Exception):
    """Base class for all PO store errors."""


class ValidationError(POStoreError):
    """Malformed input: non-positive quantity, empty name, bad unit, ..."""


class EmptyQueueError(ValidationError):
    """PO generation was requested with nothing queued or nothing selected."""


class InvalidTransitionError(ValidationError):
    """A purchase order status change that the lifecycle does not allow."""

    def __init__(self, po_number: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {po_number} from '{current}' to '{target}'")
        self.po_number = po_number
        self.current = current
        self.target = target


class AlreadyQueuedError(POStoreError):
    """Raised only by strict enqueue calls on a product that is not available."""


class NotFoundError(POStoreError):
    """A durable id or display id could not be resolved."""

    def __init__(self, kind: str, ref: str) -> None:
        super().__init__(f"{kind} not found: {ref}")
        self.kind = kind
        self.ref = ref


class DuplicateError(POStoreError):
    """A vendor name collides with an existing vendor."""


class UnauthenticatedError(POStoreError):
    """A mutation that records an actor was attempted without one."""


class StoreError(POStoreError):
    """The underlying record store call failed. The original error is chained."""


class PermissionDeniedError(POStoreError):
    """The signed-in actor's role does not grant the permission an action needs."""

    def __init__(self, role: str, permission: str) -> None:
        super().__init__(f"Role '{role}' does not have permission '{permission}'")
        self.role = role
        self.permission = permission
