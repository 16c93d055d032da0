"""Row transfer between ClickHouse tables and delimited files.

Both directions buffer the full data set in memory. Exports take their header
from the first row fetched; imports take their schema from the file header and
type every column as String.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from flatfile_bridge.errors import FileParseError, InvalidRequest
from flatfile_bridge.files import export_path, resolve_upload
from flatfile_bridge.schema import build_projection, quote_identifier

logger = logging.getLogger(__name__)

CLICKHOUSE = 'clickhouse'
FLATFILE = 'flatfile'

EXPORT = 'export'
IMPORT = 'import'

_DIRECTIONS = {
    (CLICKHOUSE, FLATFILE): EXPORT,
    (FLATFILE, CLICKHOUSE): IMPORT,
}

_DELIMITER_ALIASES = {'\\t': '\t', 'tab': '\t'}


def parse_delimiter(value):
    if value is None or value == '':
        return ','
    if not isinstance(value, str):
        raise InvalidRequest(f'Delimiter must be a string, got {value!r}')
    value = _DELIMITER_ALIASES.get(value.lower(), value)
    if len(value) != 1:
        raise InvalidRequest(f'Delimiter must be a single character, got {value!r}')
    return value


@dataclass
class TransferRequest:
    source: str
    target: str
    tables: List[str] = field(default_factory=list)
    columns: Dict[str, List[str]] = field(default_factory=dict)
    file_path: Optional[str] = None
    target_file: Optional[str] = None
    target_table: Optional[str] = None
    delimiter: str = ','

    @classmethod
    def from_payload(cls, payload):
        payload = payload or {}
        tables = payload.get('tables') or []
        columns = payload.get('columns') or {}
        if isinstance(tables, str) or not isinstance(tables, list):
            raise InvalidRequest('tables must be a list of table names')
        if not isinstance(columns, dict):
            raise InvalidRequest('columns must map table names to column lists')
        return cls(
            source=payload.get('source'),
            target=payload.get('target'),
            tables=tables,
            columns=columns,
            file_path=payload.get('filePath') or None,
            target_file=payload.get('targetFile') or None,
            target_table=payload.get('targetTable') or None,
            delimiter=parse_delimiter(payload.get('delimiter')),
        )

    @property
    def direction(self):
        try:
            return _DIRECTIONS[(self.source, self.target)]
        except (KeyError, TypeError):
            raise InvalidRequest('Invalid source or target combination') from None


@dataclass
class TransferResult:
    record_count: int
    message: str
    file_name: Optional[str] = None

    def to_dict(self):
        return {
            'success': True,
            'records': self.record_count,
            'message': self.message,
            'filePath': self.file_name,
        }


def export_to_file(manager, tables, columns_by_table, target_file, delimiter, export_dir,
                   default_name='export.csv'):
    """Copy the selected tables into one delimited file under ``export_dir``."""
    manager.require()
    frames = []
    record_count = 0

    for table in tables:
        projection = build_projection(manager, table, columns_by_table.get(table))
        query = f'SELECT {projection} FROM {quote_identifier(table)}'
        logger.info('Exporting from %s: %s', table, query)
        with manager.session() as client:
            df = client.query_df(query)
        logger.info('Fetched %d records from %s', len(df), table)
        if len(df):
            frames.append(df)
            record_count += len(df)

    if record_count == 0:
        return TransferResult(0, 'No records found to export')

    # The first row decides the header. Extra columns in later tables are
    # dropped and missing ones are written empty.
    header = list(frames[0].columns)
    combined = pd.concat(
        [frame.astype(object).reindex(columns=header) for frame in frames],
        ignore_index=True,
    )

    filename, path = export_path(export_dir, target_file, default=default_name)
    logger.info("Writing %d records to %s with delimiter %r", record_count, path, delimiter)
    combined.to_csv(path, sep=delimiter, index=False, lineterminator='\n')

    return TransferResult(
        record_count,
        f'Successfully exported {record_count} records to {filename}',
        file_name=filename,
    )


def read_flat_file(path, delimiter):
    """Parse ``path`` into a DataFrame of strings. Empty files give no rows.

    The first line is the header. A data row with more fields than the header
    is a parse error; shorter rows are padded with empty strings.
    """
    try:
        # header=None keeps pandas from turning an extra leading field into the index
        raw = pd.read_csv(path, sep=delimiter, header=None, index_col=False, dtype=str,
                          keep_default_na=False)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        raise FileParseError(f'Error reading file: {e}') from e

    header = [str(name).strip() for name in raw.iloc[0]]
    if not all(header):
        raise FileParseError('Error reading file: header contains an empty column name')
    duplicates = sorted({name for name in header if header.count(name) > 1})
    if duplicates:
        raise FileParseError(f'Error reading file: duplicate column names {duplicates}')

    df = raw.iloc[1:].reset_index(drop=True)
    df.columns = header
    return df.fillna('')


def create_table_statement(table, columns):
    column_defs = ',\n    '.join(f'{quote_identifier(str(col))} String' for col in columns)
    return (f'CREATE TABLE IF NOT EXISTS {quote_identifier(table)} (\n    {column_defs}\n) '
            f'ENGINE = MergeTree() ORDER BY tuple()')


def import_from_file(manager, file_path, target_table, delimiter, batch_size=1):
    """Load a delimited file into ``target_table``, creating it if needed.

    Rows are inserted in file order, ``batch_size`` at a time. A failed insert
    stops the import; rows already inserted stay in the table.
    """
    manager.require()
    table = quote_identifier(target_table)

    df = read_flat_file(file_path, delimiter)
    record_count = len(df)
    if record_count == 0:
        return TransferResult(0, 'No records found in file')

    logger.info('Read %d records from %s', record_count, file_path)
    batch_size = max(int(batch_size), 1)
    with manager.session() as client:
        client.command(create_table_statement(target_table, df.columns))
        for start in range(0, record_count, batch_size):
            client.insert_df(table, df.iloc[start:start + batch_size])

    logger.info('Inserted %d records into %s', record_count, target_table)
    return TransferResult(record_count, f'Successfully imported {record_count} records to {target_table}')


def run_transfer(manager, request, upload_dir, export_dir, batch_size=1, default_export_name='export.csv'):
    """Dispatch ``request`` to the export or import path."""
    direction = request.direction

    if direction == EXPORT:
        return export_to_file(
            manager,
            request.tables,
            request.columns,
            request.target_file,
            request.delimiter,
            export_dir,
            default_name=default_export_name,
        )

    if not request.file_path:
        raise InvalidRequest('No file path provided')
    if not request.target_table:
        raise InvalidRequest('No target table specified')
    manager.require()
    path = resolve_upload(request.file_path, upload_dir)
    return import_from_file(manager, path, request.target_table, request.delimiter, batch_size=batch_size)
