"""Exception types raised by the routing engine."""


class RoutingError(Exception):
    """Base class for routing engine errors."""


class ConfigurationError(RoutingError):
    """Rule or weight configuration could not be used as given."""


class ProposalError(RoutingError):
    """Base class for proposal lifecycle errors."""

    def __init__(self, message: str, proposal_id: str = ""):
        super().__init__(message)
        self.proposal_id = proposal_id


class ProposalNotFoundError(ProposalError):
    """No proposal exists with the requested id."""


class ProposalExpiredError(ProposalError):
    """The proposal passed its expiry before the action was attempted."""


class InvalidTransitionError(ProposalError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, message: str, proposal_id: str = "", current_status: str = "", target_status: str = ""):
        super().__init__(message, proposal_id)
        self.current_status = current_status
        self.target_status = target_status


class OverrideNotAllowedError(ProposalError):
    """Overrides are disabled by the decision configuration."""


class WritebackError(RoutingError):
    """The external system rejected or failed to record an assignment."""
