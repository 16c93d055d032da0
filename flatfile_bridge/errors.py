"""Error types raised by the bridge and their HTTP mapping."""


class BridgeError(Exception):
    """Base error. Carries the HTTP status and a short error code."""

    status_code = 500
    error = 'internal_error'

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'success': False, 'error': self.error, 'message': self.message}


class ConnectionFailed(BridgeError):
    status_code = 500
    error = 'connection_failed'


class NotConnected(BridgeError):
    status_code = 400
    error = 'not_connected'

    def __init__(self, message='Not connected to ClickHouse'):
        super().__init__(message)


class InvalidRequest(BridgeError):
    status_code = 400
    error = 'invalid_request'


class QueryFailed(BridgeError):
    status_code = 500
    error = 'query_failed'


class FileParseError(BridgeError):
    status_code = 500
    error = 'file_parse_failed'


class NotFound(BridgeError):
    status_code = 404
    error = 'not_found'
