# Overview: Principal and role decorators for API routes.

from functools import wraps

from flask import current_app, g, request

from .errors import AuthenticationRequired, PermissionDenied
from .services import account_service


def _resolve_principal():
    header = current_app.config.get("PRINCIPAL_HEADER", "X-Principal-Id")
    raw_id = request.headers.get(header)
    if not raw_id:
        raise AuthenticationRequired("Authentication required")
    principal = account_service.resolve_principal(raw_id)
    if principal is None:
        raise AuthenticationRequired("Unknown or inactive principal")
    return principal


def require_principal(f):
    """
    Resolve the caller from the header set by the upstream authentication
    layer and store it as g.principal.

    Tokens are never parsed here; the header carries an account id that the
    auth layer has already verified. Returns 401 if the header is missing or
    names an unknown/inactive account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.principal = _resolve_principal()
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the caller to hold one of `roles`.

    Implies require_principal. Returns 403 for any other role.

    Usage:
        @bp.delete("/<int:recovery_id>")
        @require_role("admin", "superadmin")
        def delete_recovery(recovery_id): ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = _resolve_principal()
            g.principal = principal
            if principal.role not in roles:
                raise PermissionDenied(
                    "Insufficient role",
                    details={"required_roles": list(roles), "role": principal.role},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator
