"""Exception hierarchy shared by the golem modules."""


class GolemError(Exception):
    """Base class for every error raised by golem."""


class TemplateSyntaxError(GolemError):
    """A template could not be parsed into a node tree."""


class CategoryError(GolemError):
    """A corpus category is malformed (empty pattern, missing template, ...)."""


class PersistenceError(GolemError):
    """The learned-category store failed to read or write."""


class SRAIXError(GolemError):
    """An external service call failed."""


class SessionError(GolemError):
    """An unknown or invalid chat session was referenced."""


class CommandError(GolemError):
    """A shell command was malformed or unknown."""
