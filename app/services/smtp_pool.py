"""Pooled SMTP connections shared by concurrent email sends."""

import asyncio
import logging
from dataclasses import dataclass
from email.message import Message

import aiosmtplib

from app.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP transport settings."""

    host: str
    port: int = 587
    username: str = ""
    secret: str = ""
    from_name: str = "EventDesk"
    connect_timeout: float = 30.0

    @property
    def secure(self) -> bool:
        """Port 465 uses implicit TLS; other ports upgrade with STARTTLS."""
        return self.port == 465

    @property
    def from_address(self) -> str:
        return f"{self.from_name} <{self.username}>"

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.host:
            missing.append("host")
        if not self.username:
            missing.append("username")
        if not self.secret:
            missing.append("secret")
        return missing


class _PooledConnection:
    def __init__(self, client: aiosmtplib.SMTP):
        self.client = client
        self.sent = 0


class SMTPConnectionPool:
    """A bounded set of reusable SMTP connections.

    At most ``max_connections`` sends run at once; further callers wait for
    a free slot. A connection is retired after ``max_messages`` messages or
    after any failure.
    """

    def __init__(self, config: SmtpConfig, max_connections: int = 5, max_messages: int = 100):
        self.config = config
        self.max_connections = max_connections
        self.max_messages = max_messages
        self._slots = asyncio.Semaphore(max_connections)
        self._idle: list[_PooledConnection] = []

    def _new_client(self) -> aiosmtplib.SMTP:
        if self.config.secure:
            tls_kwargs = {"use_tls": True, "start_tls": False}
        else:
            tls_kwargs = {"use_tls": False, "start_tls": True}
        return aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username or None,
            password=self.config.secret or None,
            timeout=self.config.connect_timeout,
            **tls_kwargs,
        )

    async def _acquire(self) -> _PooledConnection:
        while self._idle:
            conn = self._idle.pop()
            if conn.client.is_connected:
                return conn
        client = self._new_client()
        try:
            await client.connect()
        except BaseException:
            # Cancelled or failed mid-handshake: drop the half-open socket.
            client.close()
            raise
        logger.debug(f"Opened SMTP connection to {self.config.host}:{self.config.port}")
        return _PooledConnection(client)

    def _release(self, conn: _PooledConnection) -> None:
        if conn.sent >= self.max_messages or not conn.client.is_connected:
            self._discard(conn)
        else:
            self._idle.append(conn)

    @staticmethod
    def _discard(conn: _PooledConnection) -> None:
        conn.client.close()

    async def send_message(self, message: Message) -> None:
        """Send one message over a pooled connection."""
        async with self._slots:
            conn = None
            try:
                conn = await self._acquire()
                await conn.client.send_message(message)
            except (aiosmtplib.SMTPException, OSError) as e:
                if conn is not None:
                    self._discard(conn)
                raise TransportError(str(e)) from e
            except BaseException:
                # Cancelled mid-send (attempt timeout): the session state is unknown.
                if conn is not None:
                    self._discard(conn)
                raise
            conn.sent += 1
            self._release(conn)

    async def verify(self) -> None:
        """Open a fresh connection, log in and quit, outside the pool."""
        client = self._new_client()
        try:
            await client.connect()
        except (aiosmtplib.SMTPException, OSError) as e:
            client.close()
            raise TransportError(str(e)) from e
        except BaseException:
            client.close()
            raise
        await client.quit()

    async def close(self) -> None:
        """Politely close every idle connection."""
        idle, self._idle = self._idle, []
        for conn in idle:
            try:
                await conn.client.quit()
            except (aiosmtplib.SMTPException, OSError):
                conn.client.close()
        if idle:
            logger.info(f"Closed {len(idle)} pooled SMTP connection(s)")
