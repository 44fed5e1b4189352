"""Exception hierarchy for the SupportDesk agent."""


class SupportDeskError(Exception):
    """Base class for all SupportDesk errors."""


class ValidationError(SupportDeskError):
    """A required request field is missing or empty."""


class UpstreamUnavailable(SupportDeskError):
    """The MCP tool-provider could not be reached or reported an error.

    Raised only inside the protocol bridge, which converts it into an
    unavailable result so callers can run the local pipeline instead.
    """


class StoreUnreadable(SupportDeskError):
    """A dataset file is missing or does not contain valid JSON."""


class BindConflict(SupportDeskError):
    """No port in the configured retry range could be bound."""


class BadUpstreamResponse(SupportDeskError):
    """The MCP tool-provider answered, but with a payload that does not parse.

    Only raised for operations with side effects on the provider (``ask_support``
    logs the question), where re-running them locally would log twice.
    """
