"""Shared fixtures: an in-memory stand-in for a clickhouse_connect client."""

import re

import pandas as pd
import pytest
from clickhouse_connect.driver.exceptions import DatabaseError, OperationalError

from flatfile_bridge import create_app
from flatfile_bridge.connection import ConnectionConfig, ConnectionManager

_SELECT = re.compile(r'SELECT (.+) FROM `([^`]+)`(?: LIMIT (\d+))?$')
_DESCRIBE = re.compile(r'DESCRIBE TABLE `([^`]+)`$')
_CREATE = re.compile(r'CREATE TABLE IF NOT EXISTS `([^`]+)` \((.*)\) ENGINE', re.S)


class FakeQueryResult:
    def __init__(self, column_names, rows):
        self.column_names = tuple(column_names)
        self.result_rows = [tuple(row) for row in rows]

    def named_results(self):
        for row in self.result_rows:
            yield dict(zip(self.column_names, row))


class FakeClickHouse:
    """Keeps tables as DataFrames and records every statement it sees."""

    def __init__(self, tables=None):
        self.tables = {name: pd.DataFrame(rows) for name, rows in (tables or {}).items()}
        self.commands = []
        self.queries = []
        self.inserts = []
        self.fail_on_insert = None
        self.closed = False

    @property
    def liveness_checks(self):
        return self.commands.count('SELECT 1')

    def _table(self, name):
        if name not in self.tables:
            raise DatabaseError(f'Code: 60. DB::Exception: Table default.{name} does not exist. (UNKNOWN_TABLE)')
        return self.tables[name]

    def _select(self, sql):
        match = _SELECT.match(sql)
        if not match:
            raise DatabaseError(f'Code: 62. Syntax error: {sql}')
        projection, table, limit = match.groups()
        df = self._table(table)
        if projection != '*':
            df = df[re.findall(r'`([^`]+)`', projection)]
        if limit:
            df = df.head(int(limit))
        return df.reset_index(drop=True)

    def command(self, sql):
        self.commands.append(sql)
        if sql == 'SELECT 1':
            return 1
        match = _CREATE.match(sql)
        if match and match.group(1) not in self.tables:
            columns = re.findall(r'`([^`]+)` String', match.group(2))
            self.tables[match.group(1)] = pd.DataFrame(columns=columns)
        return None

    def query(self, sql):
        self.queries.append(sql)
        if sql == 'SHOW TABLES':
            return FakeQueryResult(['name'], [[name] for name in self.tables])
        match = _DESCRIBE.match(sql)
        if match:
            df = self._table(match.group(1))
            return FakeQueryResult(['name', 'type'], [[col, 'String'] for col in df.columns])
        df = self._select(sql)
        return FakeQueryResult(df.columns, df.itertuples(index=False, name=None))

    def query_df(self, sql):
        self.queries.append(sql)
        return self._select(sql).copy()

    def insert_df(self, table, df):
        # Keep the argument as given; only a backtick-quoted name is one table
        self.inserts.append((table, df.copy()))
        if self.fail_on_insert == len(self.inserts):
            raise DatabaseError('Code: 27. DB::Exception: Cannot parse input')
        if table.startswith('`') and table.endswith('`'):
            name = table[1:-1]
        elif '.' in table:
            database = table.split('.', 1)[0]
            raise DatabaseError(f'Code: 81. DB::Exception: Database {database} does not exist. (UNKNOWN_DATABASE)')
        else:
            name = table
        existing = self.tables.get(name)
        if existing is None:
            raise DatabaseError(f'Code: 60. DB::Exception: Table {name} does not exist. (UNKNOWN_TABLE)')
        if existing.empty:
            self.tables[name] = df.reset_index(drop=True)
        else:
            self.tables[name] = pd.concat([existing, df], ignore_index=True)

    def rows(self, table):
        return list(self.tables[table].itertuples(index=False, name=None))

    def close(self):
        self.closed = True


class FakeClientFactory:
    """Replaces clickhouse_connect.get_client; set ``fail`` to refuse connections."""

    def __init__(self, client):
        self.client = client
        self.calls = []
        self.fail = False

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail:
            raise OperationalError('Error HTTPSConnectionPool: Connection refused')
        return self.client


CONNECT_PAYLOAD = {
    'host': 'https://ch.example.com ',
    'port': '8443',
    'database': 'default',
    'username': 'default',
    'password': 's3cret',
}


@pytest.fixture
def fake_client():
    return FakeClickHouse()


@pytest.fixture
def client_factory(fake_client):
    return FakeClientFactory(fake_client)


@pytest.fixture
def connect_payload():
    return dict(CONNECT_PAYLOAD)


@pytest.fixture
def connection_config():
    return ConnectionConfig.from_payload(CONNECT_PAYLOAD)


@pytest.fixture
def manager(client_factory):
    return ConnectionManager(client_factory=client_factory)


@pytest.fixture
def connected(manager, connection_config):
    manager.connect(connection_config)
    return manager


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / 'uploads'
    path.mkdir()
    return path


@pytest.fixture
def export_dir(tmp_path):
    return tmp_path / 'exports'


@pytest.fixture
def app(tmp_path, client_factory):
    app = create_app(
        {
            'TESTING': True,
            'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
            'EXPORT_FOLDER': str(tmp_path / 'exports'),
        },
        client_factory=client_factory,
    )
    yield app
    app.extensions['flatfile_bridge'].close()


@pytest.fixture
def http(app):
    return app.test_client()
