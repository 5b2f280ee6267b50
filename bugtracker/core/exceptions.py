"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from bugtracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Bug", resource_id=42)
    raise ValidationError("Summary is required", details={"summary": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Bug", "Relationship").
        resource_id: The PK that was looked up.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint). This
    exception signals that the data was well-formed but violated a business
    rule (e.g. resolving a bug whose blocking children are still open).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class RelationshipNotFoundError(NotFoundError):
    """Relationship id does not resolve to a row, or a bug is not one of its endpoints."""

    def __init__(self, relationship_id: int | None = None, bug_id: int | None = None) -> None:
        self.bug_id = bug_id
        super().__init__(resource="Relationship", resource_id=relationship_id)
        if bug_id is not None:
            self.args = (f"{self.args[0]} for bug id={bug_id}",)


class UnknownRelationshipTypeError(LookupError):
    """A relationship type code that is not registered.

    Indicates a programming or configuration error; the HTTP layer validates
    user-supplied types before they reach the store.
    """

    def __init__(self, code) -> None:
        self.code = code
        super().__init__(f"Unknown relationship type: {code!r}")
