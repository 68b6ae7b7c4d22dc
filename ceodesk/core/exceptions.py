"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere. Domain outcomes (a rejected
transition, a double decision) are typed here so they can never be confused
with infrastructure failures, which surface as SQLAlchemy errors and are
translated separately by ``db_commit_or_error``.

Usage:
    from ceodesk.core.exceptions import NotFoundError, InvalidTransitionError

    raise NotFoundError(resource="Request", resource_id=request_id)
    raise InvalidTransitionError(current="DRAFT", target="APPROVED")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-org
    access attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Request", "Approval").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        org_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        org_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if org_id is not None:
            msg += f" (org={org_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a business rule.

    Maps to HTTP 422.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class AuthenticationError(Exception):
    """No usable identity on the request. Maps to HTTP 401."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


# ── Request lifecycle / approval outcomes ────────────────────────────────────


class DomainError(Exception):
    """Base for expected lifecycle outcomes reported back to the caller."""

    code = "ERR_DOMAIN"

    def details(self) -> dict:
        return {}


class InvalidTransitionError(DomainError):
    """Target status is not reachable from the current status."""

    code = "ERR_INVALID_TRANSITION"

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        self.current_status = current
        self.target_status = target
        self.reason = reason
        msg = f"Cannot transition request from {current} to {target}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def details(self) -> dict:
        return {"current_status": self.current_status, "target_status": self.target_status}


class ForbiddenError(DomainError):
    """Actor role (or identity) is not permitted to perform the action."""

    code = "ERR_FORBIDDEN"

    def __init__(
        self,
        action: str,
        required_roles=None,
        actor_role: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.action = action
        self.required_roles = sorted(required_roles or [])
        self.actor_role = actor_role
        self.reason = reason
        if reason:
            msg = reason
        elif self.required_roles:
            msg = f"'{action}' requires role {' or '.join(self.required_roles)}"
        else:
            msg = f"Not permitted to {action}"
        super().__init__(msg)

    def details(self) -> dict:
        d = {"action": self.action}
        if self.required_roles:
            d["required_roles"] = self.required_roles
        if self.actor_role:
            d["actor_role"] = self.actor_role
        return d


class ApprovalStateError(DomainError):
    """Base for attempts to decide an approval that is no longer open."""

    def __init__(self, approval_id: str, message: str) -> None:
        self.approval_id = approval_id
        super().__init__(message)


class AlreadyDecidedError(ApprovalStateError):
    code = "ERR_ALREADY_DECIDED"

    def __init__(self, approval_id: str, decision: str) -> None:
        self.decision = decision
        super().__init__(approval_id, f"Approval {approval_id} has already been {decision}")

    def details(self) -> dict:
        return {"approval_id": self.approval_id, "decision": self.decision}


class InvalidatedError(ApprovalStateError):
    code = "ERR_APPROVAL_INVALIDATED"

    def __init__(self, approval_id: str, reason: str | None = None) -> None:
        self.reason = reason
        msg = f"Approval {approval_id} was invalidated"
        if reason:
            msg += f" ({reason})"
        super().__init__(approval_id, msg)

    def details(self) -> dict:
        return {"approval_id": self.approval_id, "invalidated_reason": self.reason}


class ResubmitNotAllowedError(DomainError):
    code = "ERR_RESUBMIT_NOT_ALLOWED"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Resubmission not allowed: {reason}")

    def details(self) -> dict:
        return {"reason": self.reason}


class VersionConflictError(DomainError):
    """Edit was prepared against a request version that has since moved on."""

    code = "ERR_VERSION_CONFLICT"

    def __init__(self, expected: int, actual: int | None) -> None:
        self.expected_version = expected
        self.actual_version = actual
        super().__init__(
            f"Request version conflict: edit based on v{expected}, current is v{actual}"
        )

    def details(self) -> dict:
        return {"expected_version": self.expected_version, "current_version": self.actual_version}
