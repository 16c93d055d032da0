"""Upload and export directories on local disk."""

import os
import time
from dataclasses import dataclass

from werkzeug.utils import secure_filename

from flatfile_bridge.errors import InvalidRequest, NotFound


def sanitize_filename(name, default=None):
    """Reduce ``name`` to its last path component.

    ``../../etc/passwd`` becomes ``passwd``. Returns ``default`` for an empty
    name and raises ``InvalidRequest`` when nothing usable is left.
    """
    if name is None or not str(name).strip():
        if default is None:
            raise InvalidRequest('File name is required')
        return default
    base = os.path.basename(str(name).replace('\\', '/').strip())
    if base in ('', '.', '..'):
        raise InvalidRequest(f'Invalid file name: {name!r}')
    return base


@dataclass
class UploadedFile:
    filename: str
    original_name: str
    path: str
    size: int

    def to_dict(self):
        return {
            'filename': self.filename,
            'originalName': self.original_name,
            'path': self.path,
            'size': self.size,
        }


def save_upload(storage, upload_dir):
    """Store a werkzeug ``FileStorage`` as ``<epoch-ms>-<name>``."""
    if storage is None or not storage.filename:
        raise InvalidRequest('No file uploaded')
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = secure_filename(storage.filename) or 'upload'
    filename = f'{int(time.time() * 1000)}-{safe_name}'
    path = os.path.join(upload_dir, filename)
    storage.save(path)
    return UploadedFile(
        filename=filename,
        original_name=storage.filename,
        path=path,
        size=os.path.getsize(path),
    )


def _is_within(path, directory):
    directory = os.path.realpath(directory)
    return os.path.commonpath([os.path.realpath(path), directory]) == directory


def resolve_upload(file_path, upload_dir):
    """Absolute path of an uploaded file; must live under ``upload_dir``."""
    path = file_path
    if not os.path.isabs(path):
        path = os.path.join(upload_dir, sanitize_filename(path))
    if not _is_within(path, upload_dir):
        raise InvalidRequest('File path must reference an uploaded file')
    if not os.path.isfile(path):
        raise NotFound(f'Uploaded file not found: {os.path.basename(path)}')
    return path


def export_path(export_dir, name, default='export.csv'):
    """Target path for an export. Creates the exports directory."""
    filename = sanitize_filename(name, default=default)
    os.makedirs(export_dir, exist_ok=True)
    return filename, os.path.join(export_dir, filename)


def find_export(export_dir, name):
    try:
        filename = sanitize_filename(name)
    except InvalidRequest:
        raise NotFound('File not found') from None
    path = os.path.join(export_dir, filename)
    if not os.path.isfile(path):
        raise NotFound('File not found')
    return filename
