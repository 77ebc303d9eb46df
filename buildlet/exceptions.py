"""Custom exceptions for the OpenBSD buildlet provisioner."""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class FetchError(ManagerError):
    """Raised when an install set cannot be downloaded."""


class VerifyError(ManagerError):
    """Raised when signature verification of an install set fails."""


class ProvisionError(ManagerError):
    """Raised when the boot disk cannot be created."""


class DialogueError(ManagerError):
    """Raised when the console dialogue with the guest cannot continue."""


class DialogueTimeout(DialogueError):
    """Raised when an expected console pattern does not show up in time."""
