"""Request context management using contextvars.

Each request gets a unique ID, plus the hashed client identifier and the
authenticated moderator (when there is one). Values are readable anywhere in
the call stack and are injected into every log event.
"""

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
client_id_var: ContextVar[str | None] = ContextVar("client_id", default=None)
admin_id_var: ContextVar[str | None] = ContextVar("admin_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_client_id() -> str | None:
    """Get the current (hashed) client identifier."""
    return client_id_var.get()


def set_client_id(client_id: str | None) -> None:
    client_id_var.set(client_id)


def get_admin_id() -> str | None:
    """Get the authenticated moderator for the current request."""
    return admin_id_var.get()


def set_admin_id(admin_id: str | None) -> None:
    """Set the moderator ID once an admin request is authenticated.

    Args:
        admin_id: The moderator identifier, or None to clear it.
    """
    admin_id_var.set(admin_id)


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary.

    Returns:
        Dictionary with request_id, client_id and admin_id when set.
    """
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    client_id = get_client_id()
    if client_id:
        context["client_id"] = client_id

    admin_id = get_admin_id()
    if admin_id:
        context["admin_id"] = admin_id

    return context


def clear_context() -> None:
    """Clear all context variables.

    This should be called at the end of each request to prevent
    context leakage between requests.
    """
    request_id_var.set("")
    client_id_var.set(None)
    admin_id_var.set(None)


class RequestContext:
    """Context manager for request scope.

    Usage:
        with RequestContext(request_id="...", admin_id="..."):
            log.info("doing something")  # Will include request_id, admin_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        client_id: str | None = None,
        admin_id: str | None = None,
    ) -> None:
        self.request_id = request_id
        self.client_id = client_id
        self.admin_id = admin_id
        self._tokens: dict[ContextVar[Any], Any] = {}

    def __enter__(self) -> "RequestContext":
        """Enter context and set variables."""
        self._tokens[request_id_var] = request_id_var.set(
            self.request_id or generate_request_id()
        )
        if self.client_id is not None:
            self._tokens[client_id_var] = client_id_var.set(self.client_id)
        if self.admin_id is not None:
            self._tokens[admin_id_var] = admin_id_var.set(self.admin_id)
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in self._tokens.items():
            var.reset(token)
        self._tokens.clear()
