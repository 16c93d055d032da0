"""Process-wide ClickHouse session with lazy reconnection.

The app holds one ``ConnectionManager``. ``connect()`` replaces the client and
remembers the credentials that worked; ``ensure()`` rebuilds the client from
those credentials when a failure has dropped it.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

import clickhouse_connect
from clickhouse_connect.driver.exceptions import Error as ClickHouseError
from clickhouse_connect.driver.exceptions import OperationalError

from flatfile_bridge.errors import ConnectionFailed, InvalidRequest, NotConnected, QueryFailed

logger = logging.getLogger(__name__)

LIVENESS_QUERY = 'SELECT 1'


def normalize_host(host, default_scheme='https'):
    """Strip whitespace and a leading http:// or https://.

    Returns ``(host, scheme)``; the scheme is the stripped prefix, or
    ``default_scheme`` when there was none.
    """
    host = host.strip()
    for scheme in ('https', 'http'):
        prefix = scheme + '://'
        if host.lower().startswith(prefix):
            return host[len(prefix):].strip().rstrip('/'), scheme
    return host, default_scheme


@dataclass(frozen=True)
class ConnectionConfig:
    host: str
    port: int
    database: str
    username: str
    password: str = field(default='', repr=False)
    secure: bool = True

    @property
    def url(self):
        scheme = 'https' if self.secure else 'http'
        return f'{scheme}://{self.host}:{self.port}'

    @classmethod
    def from_payload(cls, payload, default_scheme='https'):
        """Build a config from a /connect request body."""
        payload = payload or {}
        required_keys = ['host', 'port', 'database', 'username']
        missing = [key for key in required_keys if not str(payload.get(key) or '').strip()]
        if missing:
            raise InvalidRequest(f"Missing required ClickHouse connection parameters: {', '.join(missing)}")

        host, scheme = normalize_host(str(payload['host']), default_scheme)
        if not host:
            raise InvalidRequest('Host is empty after removing the URL scheme')
        try:
            port = int(payload['port'])
        except (TypeError, ValueError):
            raise InvalidRequest(f"Port must be an integer, got {payload['port']!r}") from None

        return cls(
            host=host,
            port=port,
            database=str(payload['database']).strip(),
            username=str(payload['username']).strip(),
            password=payload.get('password') or '',
            secure=scheme == 'https',
        )


class ConnectionManager:
    """Holds at most one live client plus the last config that connected."""

    def __init__(self, client_factory=None, settings=None):
        self._client_factory = client_factory or clickhouse_connect.get_client
        self._settings = dict(settings or {})
        self._client = None
        self._config = None
        self._lock = threading.RLock()

    @property
    def client(self):
        return self._client

    @property
    def config(self):
        return self._config

    @property
    def is_connected(self):
        return self._client is not None

    def _open(self, config):
        logger.info('Connecting to ClickHouse at %s (database=%s, user=%s)',
                    config.url, config.database, config.username)
        client = self._client_factory(
            host=config.host,
            port=config.port,
            username=config.username,
            password=config.password,
            database=config.database,
            secure=config.secure,
            settings=self._settings,
        )
        try:
            client.command(LIVENESS_QUERY)
        except Exception:
            _close_quietly(client)
            raise
        return client

    def connect(self, config):
        """Open a new client for ``config`` and make it the active one.

        Raises ``ConnectionFailed`` with the driver message on any failure. The
        client is dropped in that case but the previous config is kept.
        """
        with self._lock:
            previous = self._client
            self._client = None
            if previous is not None:
                _close_quietly(previous)
            try:
                client = self._open(config)
            except Exception as e:
                logger.warning('ClickHouse connection to %s failed: %s', config.url, e)
                raise ConnectionFailed(str(e)) from e
            self._client = client
            self._config = config
            logger.info('ClickHouse connection successful.')

    def ensure(self):
        """Return True if a client is live, reconnecting once if needed."""
        with self._lock:
            if self._client is not None:
                return True
            if self._config is None:
                return False
            logger.info('No active ClickHouse client, reconnecting with stored credentials')
            try:
                self._client = self._open(self._config)
            except Exception as e:
                logger.warning('Reconnect to %s failed: %s', self._config.url, e)
                self._client = None
                return False
            return True

    def require(self):
        if not self.ensure():
            raise NotConnected()
        return self._client

    def invalidate(self):
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            _close_quietly(client)

    @contextmanager
    def session(self):
        """Yield the live client, translating driver errors to ``QueryFailed``.

        Operational errors (lost connection, network failure) also drop the
        client so the next ``ensure()`` reconnects.
        """
        client = self.require()
        try:
            yield client
        except OperationalError as e:
            logger.warning('ClickHouse session lost: %s', e)
            self.invalidate()
            raise QueryFailed(str(e)) from e
        except ClickHouseError as e:
            raise QueryFailed(str(e)) from e

    def close(self):
        self.invalidate()


def _close_quietly(client):
    try:
        client.close()
    except Exception as close_err:
        logger.debug('Error closing ClickHouse client: %s', close_err)
