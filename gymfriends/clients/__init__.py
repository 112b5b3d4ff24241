from .backend import BackendAuthError, BackendClient, BackendError, BackendNotFoundError

__all__ = ["BackendClient", "BackendError", "BackendAuthError", "BackendNotFoundError"]
