"""HTTP endpoints of the bridge, registered on the app by create_app."""

import logging

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from werkzeug.exceptions import HTTPException

from flatfile_bridge.connection import ConnectionConfig
from flatfile_bridge.errors import BridgeError, InvalidRequest
from flatfile_bridge.files import find_export, save_upload
from flatfile_bridge.schema import describe_table, list_tables, preview_rows
from flatfile_bridge.transfer import TransferRequest, run_transfer

logger = logging.getLogger(__name__)

bp = Blueprint('bridge', __name__)


def get_manager():
    return current_app.extensions['flatfile_bridge']


@bp.app_errorhandler(BridgeError)
def handle_bridge_error(err):
    logger.warning('%s: %s', err.error, err.message)
    return jsonify(err.to_dict()), err.status_code


@bp.app_errorhandler(Exception)
def handle_unexpected_error(err):
    if isinstance(err, HTTPException):
        return err
    logger.exception('Unexpected error handling %s %s', request.method, request.path)
    return jsonify({
        'success': False,
        'error': 'internal_error',
        'message': 'An unexpected server error occurred.',
    }), 500


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'healthy', 'connected': get_manager().is_connected})


@bp.route('/connect', methods=['POST'])
def connect():
    payload = request.get_json(silent=True) or {}
    try:
        config = ConnectionConfig.from_payload(
            payload, default_scheme=current_app.config['CLICKHOUSE_SCHEME'])
        get_manager().connect(config)
    except BridgeError as e:
        return jsonify({'success': False, 'message': 'Failed to connect', 'error': e.message}), e.status_code
    except Exception as e:
        logger.exception('Unexpected error during ClickHouse connection')
        return jsonify({'success': False, 'message': 'Failed to connect', 'error': str(e)}), 500
    return jsonify({'success': True, 'message': 'Connected to ClickHouse'})


@bp.route('/tables', methods=['GET'])
def tables():
    return jsonify(list_tables(get_manager()))


@bp.route('/columns/<table>', methods=['GET'])
def columns(table):
    return jsonify(describe_table(get_manager(), table))


@bp.route('/preview', methods=['POST'])
def preview():
    payload = request.get_json(silent=True) or {}
    table = payload.get('table')
    if not table:
        raise InvalidRequest("Missing 'table' parameter")
    rows = preview_rows(
        get_manager(),
        table,
        payload.get('columns') or [],
        limit=current_app.config['PREVIEW_LIMIT'],
    )
    return jsonify(rows)


@bp.route('/upload', methods=['POST'])
def upload():
    uploaded = save_upload(request.files.get('file'), current_app.config['UPLOAD_FOLDER'])
    logger.info('Stored upload %s (%d bytes)', uploaded.filename, uploaded.size)
    return jsonify({'success': True, 'file': uploaded.to_dict()})


@bp.route('/ingest', methods=['POST'])
def ingest():
    transfer = TransferRequest.from_payload(request.get_json(silent=True))
    logger.info('Starting ingestion %s -> %s', transfer.source, transfer.target)
    result = run_transfer(
        get_manager(),
        transfer,
        upload_dir=current_app.config['UPLOAD_FOLDER'],
        export_dir=current_app.config['EXPORT_FOLDER'],
        batch_size=current_app.config['INSERT_BATCH_SIZE'],
        default_export_name=current_app.config['DEFAULT_EXPORT_NAME'],
    )
    return jsonify(result.to_dict())


@bp.route('/download/<path:filename>', methods=['GET'])
def download(filename):
    export_dir = current_app.config['EXPORT_FOLDER']
    name = find_export(export_dir, filename)
    return send_from_directory(export_dir, name, as_attachment=True)
