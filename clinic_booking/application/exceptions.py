
class BackendError(RuntimeError):
    """Base class for failures reported by the booking backend adapters."""
    pass


class BackendUpstreamError(BackendError):
    """Raised when the backend is unreachable (timeouts, network errors, non-2xx responses)."""
    pass


class BackendContractError(BackendError):
    """Raised when the backend answers with a payload the adapter cannot interpret."""
    pass


class BackendRequestFailed(BackendError):
    """Raised when the backend answers with a structured `success: false`."""
    pass


class NotAuthenticatedError(BackendError):
    """Raised when the backend reports the caller is not signed in."""
    pass
