"""HTTP bridge for moving rows between ClickHouse and flat files."""

import os
from datetime import date, datetime

from flask import Flask
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS

from flatfile_bridge.config import Config
from flatfile_bridge.connection import ConnectionManager

__version__ = '0.1.0'


class BridgeJSONProvider(DefaultJSONProvider):
    """Writes dates the way ClickHouse prints them (``2024-01-01 12:30:00``)."""

    @staticmethod
    def default(o):
        if isinstance(o, datetime):
            return o.isoformat(sep=' ')
        if isinstance(o, date):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def create_app(config=None, client_factory=None):
    """Create and configure the Flask application.

    Settings come from ``Config``, then ``FLATFILE_BRIDGE_*`` environment
    variables, then ``config``. ``client_factory`` replaces
    ``clickhouse_connect.get_client`` (tests pass a fake).
    """
    app = Flask(__name__)
    app.json = BridgeJSONProvider(app)
    app.config.from_object(Config)
    app.config.from_prefixed_env('FLATFILE_BRIDGE')
    if config:
        app.config.update(config)

    for key in ('UPLOAD_FOLDER', 'EXPORT_FOLDER'):
        app.config[key] = os.path.abspath(str(app.config[key]))
        os.makedirs(app.config[key], exist_ok=True)

    CORS(app, origins=app.config['CORS_ORIGINS'])

    app.extensions['flatfile_bridge'] = ConnectionManager(
        client_factory=client_factory,
        settings=app.config['CLICKHOUSE_SETTINGS'],
    )

    from flatfile_bridge.routes import bp
    app.register_blueprint(bp)

    return app
