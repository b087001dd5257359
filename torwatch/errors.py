class TorwatchError(Exception):
    """Base class for errors raised by torwatch."""


class ValidationError(TorwatchError):
    """Input rejected before any command reaches the engine."""


class NotFoundError(TorwatchError):
    """An intent referenced a torrent or file missing from the current snapshot."""

    def __init__(self, info_hash: str, index: int | None = None, *, message: str | None = None):
        self.info_hash = info_hash
        self.index = index
        if message is None and index is None:
            message = f"torrent {info_hash} is not in the current snapshot"
        elif message is None:
            message = f"file #{index} of torrent {info_hash} is not in the current snapshot"
        super().__init__(message)


class CommandFailure(TorwatchError):
    """The engine rejected or failed a command."""

    def __init__(self, command: str, info_hash: str | None, cause: BaseException):
        self.command = command
        self.info_hash = info_hash
        self.cause = cause
        target = f" for {info_hash}" if info_hash else ""
        super().__init__(f"{command}{target} failed: {cause}")
