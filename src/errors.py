"""Exception types raised by the KPI tracker."""


class KPIError(Exception):
    """Base class for tracker errors."""


class NotFoundError(KPIError):
    """A referenced developer, ticket or bug does not exist."""

    def __init__(self, entity, entity_id):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidConfigError(KPIError):
    """KPI configuration rejected at the config boundary."""


class ValidationError(KPIError):
    """Input rejected at the edit boundary."""


class InvalidTransitionError(ValidationError):
    """Ticket status change not allowed by the workflow."""

    def __init__(self, ticket_id, current, requested):
        super().__init__(
            f"Ticket {ticket_id} cannot move from '{current}' to '{requested}'"
        )
        self.ticket_id = ticket_id
        self.current = current
        self.requested = requested


class AggregateFailureError(KPIError):
    """No developer produced KPI data for a team-wide report."""
