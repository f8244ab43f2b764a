"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from postmortem.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Org", resource_id=42)
    raise ValidationError("Unknown job", details={"job_name": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-org access attempts,
    so a caller cannot learn whether a record in another org exists.

    Args:
        resource: Human-readable model/entity name (e.g. "Org", "Digest").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        org_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        org_id: int | None = None,
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
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AutomationBatchError(Exception):
    """Raised after a batch run in which one or more orgs failed.

    Every org in the batch was attempted; ``errors`` maps org id to the
    recorded error message.  Each failure is also persisted on that org's
    AutomationRun row.
    """

    def __init__(self, job_name: str, errors: dict[int, str]) -> None:
        self.job_name = job_name
        self.errors = dict(errors)
        failed = ", ".join(f"org {org_id}: {msg}" for org_id, msg in self.errors.items())
        super().__init__(f"{job_name} failed for {len(self.errors)} org(s): {failed}")
