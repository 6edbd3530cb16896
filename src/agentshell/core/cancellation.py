"""Cooperative cancellation token."""

from collections.abc import Callable

from agentshell.core.logger import get_logger

Listener = Callable[[], None]


class CancellationToken:
    """One-shot cancellation signal with synchronous listeners.

    Listeners run in registration order the first time ``cancel()`` is called.
    Firing the token only *requests* cancellation; whoever registered the
    listener decides how to honor it.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._listeners: list[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener) -> Listener:
        """Register a listener; it is dropped after it fires once.

        Returns:
            The listener, for use with ``remove_listener``
        """
        self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def cancel(self, reason: str | None = None) -> None:
        """Fire the token. Subsequent calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception as e:  # noqa: BLE001
                get_logger().warn("Cancellation listener raised", error=str(e))
