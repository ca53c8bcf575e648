"""Exceptions raised by the VARA modem client."""


class VaraError(Exception):
    """Base class for all errors raised by this package."""


class ModemClosedError(VaraError, ConnectionError):
    """The modem has been closed or the link to it was lost."""

    def __init__(self, message: str = "modem closed") -> None:
        super().__init__(message)


class ListenerClosedError(VaraError):
    """The listener has been closed."""

    def __init__(self, message: str = "listener closed") -> None:
        super().__init__(message)


class UnsupportedSchemeError(VaraError, ValueError):
    """A URL was given whose scheme this modem does not handle."""

    def __init__(self, message: str = "unsupported scheme") -> None:
        super().__init__(message)