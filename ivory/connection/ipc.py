"""Contains the inter-process communication facilities of connections: *LISTEN* and *NOTIFY*."""

from __future__ import annotations

import collections
from dataclasses import dataclass
from typing import Optional

import psycopg

from ..lang.sql import quote_ident, quote_literal


@dataclass(frozen=True)
class Notification:
    """A notification received on a channel the connection listens to.

    Attributes
    ----------
    channel : str
        The channel name
    pid : int
        The backend process ID of the session which sent the notification
    payload : str
        The payload, empty if none was sent
    """
    channel: str
    pid: int
    payload: str = ""


class IPCControl:
    """Sends and receives asynchronous notifications.

    Notifications arriving while other statements are processed are buffered until they are polled.
    """

    def _init_ipc(self) -> None:
        self._notification_buffer: collections.deque[Notification] = collections.deque()

    def backend_pid(self) -> int:
        """Provides the process ID of the server process serving this connection."""
        return self.require_connection().info.backend_pid

    def notify(self, channel: str, payload: Optional[str] = None) -> None:
        if payload is None:
            self.raw_command(f"NOTIFY {quote_ident(channel)}")
        else:
            self.raw_query(f"SELECT pg_catalog.pg_notify({quote_literal(channel)}, {quote_literal(payload)})")

    def listen(self, channel: str) -> None:
        self.raw_command(f"LISTEN {quote_ident(channel)}")

    def unlisten(self, channel: str) -> None:
        self.raw_command(f"UNLISTEN {quote_ident(channel)}")

    def unlisten_all(self) -> None:
        self.raw_command("UNLISTEN *")

    def poll_notification(self) -> Optional[Notification]:
        """Provides the next pending notification without waiting for one.

        Returns
        -------
        Optional[Notification]
            The oldest notification not polled yet, or *None* if there is none
        """
        if self._notification_buffer:
            return self._notification_buffer.popleft()
        pgconn = self.require_connection().pgconn
        pgconn.consume_input()
        raw_notification = pgconn.notifies()
        if raw_notification is None:
            return None
        encoding = self._client_encoding()
        return Notification(raw_notification.relname.decode(encoding), raw_notification.be_pid,
                            raw_notification.extra.decode(encoding))

    def wait_for_notification(self, millis: int) -> Optional[Notification]:
        """Waits for a notification to arrive.

        Parameters
        ----------
        millis : int
            The maximal time to wait, in milliseconds

        Returns
        -------
        Optional[Notification]
            The notification, or *None* if none arrived in time
        """
        pending = self.poll_notification()
        if pending is not None:
            return pending
        for notify in self.require_connection().notifies(timeout=millis / 1000, stop_after=1):
            return Notification(notify.channel, notify.pid, notify.payload)
        return None

    def _buffer_notification(self, notify: psycopg.Notify) -> None:
        self._notification_buffer.append(Notification(notify.channel, notify.pid, notify.payload))
