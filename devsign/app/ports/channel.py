"""Channel port interface for interactive sub-processes."""

from typing import Protocol


class ChannelPort(Protocol):
    """Duplex byte stream attached to a running sub-process.

    ``read`` returns ``b""`` once the sub-process has closed its side; that is
    the normal end of a conversation, not an error.
    """

    def read(self, size: int = 1024) -> bytes:
        """Read up to ``size`` bytes, blocking until data or end-of-input."""
        ...

    def write(self, data: bytes) -> None:
        """Write ``data`` to the sub-process."""
        ...

    def wait(self) -> int:
        """Wait for the sub-process to exit and return its exit status."""
        ...

    def close(self) -> None:
        """Release the channel."""
        ...
