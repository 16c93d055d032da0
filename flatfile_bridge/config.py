"""Default settings. Override with FLATFILE_BRIDGE_* environment variables."""


class Config:
    UPLOAD_FOLDER = 'uploads'
    EXPORT_FOLDER = 'exports'
    DEFAULT_EXPORT_NAME = 'export.csv'

    # Used when the host is given without http:// or https://
    CLICKHOUSE_SCHEME = 'https'
    # Passed to every client, same as the ingestion defaults we always used
    CLICKHOUSE_SETTINGS = {'insert_deduplicate': 0}

    PREVIEW_LIMIT = 100
    # Rows per INSERT when loading a file. 1 keeps row-level abort behaviour.
    INSERT_BATCH_SIZE = 1

    MAX_CONTENT_LENGTH = 512 * 1024 * 1024
    CORS_ORIGINS = '*'

    LOG_LEVEL = 'INFO'
    HOST = '0.0.0.0'
    PORT = 3001
    DEBUG = False
