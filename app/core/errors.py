"""Core error kinds."""


class GenerationError(Exception):
    """The generator call failed or returned data that could not be parsed.

    Network failures, timeouts and malformed payloads all collapse into this
    one kind; the original cause is chained as ``__cause__``.
    """
