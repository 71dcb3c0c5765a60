import io
import os
import uuid
from flask import current_app, url_for
from PIL import Image
from werkzeug.utils import secure_filename
from models.constants import (
    ALLOWED_EXTENSIONS, ALLOWED_MIME_TYPES, AVATAR_MAX_SIZE, AVATAR_QUALITY
)
from models.utils import allowed_file

INVALID_TYPE_MESSAGE = "Invalid file type. Please upload a JPEG, PNG, WebP, or GIF image."


class StorageError(Exception):
    pass


def size_in_mb(num_bytes):
    return num_bytes / (1024 * 1024)


def validate_image_type(file):
    """Returns (is_valid, error) for an uploaded werkzeug FileStorage."""
    if not file or not file.filename or not allowed_file(file.filename, ALLOWED_EXTENSIONS):
        return False, INVALID_TYPE_MESSAGE
    if file.mimetype not in ALLOWED_MIME_TYPES:
        return False, INVALID_TYPE_MESSAGE
    return True, None


def validate_file_size(num_bytes, max_mb):
    if num_bytes > max_mb * 1024 * 1024:
        return False, f"File size must be less than {max_mb}MB. Current size: {size_in_mb(num_bytes):.2f}MB"
    return True, None


def read_image(file):
    """Read an upload into memory; None when Pillow cannot parse it."""
    data = file.read()
    try:
        img = Image.open(io.BytesIO(data))
        img.verify()
        # verify() skips pixel data, so a truncated file only fails on load
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, SyntaxError, ValueError):
        return None
    return data


def compress_image(data, max_size=AVATAR_MAX_SIZE, quality=AVATAR_QUALITY):
    """Shrink an image to fit max_size, keeping aspect ratio and format."""
    img = Image.open(io.BytesIO(data))
    fmt = img.format or 'PNG'
    img.thumbnail(max_size)
    if fmt == 'JPEG' and img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')
    out = io.BytesIO()
    if fmt in ('JPEG', 'WEBP'):
        img.save(out, format=fmt, quality=quality)
    else:
        img.save(out, format=fmt, optimize=True)
    return out.getvalue()


def upload(bucket, owner_id, original_name, data):
    """Store bytes under UPLOAD_FOLDER/<bucket>/ and return the stored path."""
    ext = secure_filename(original_name).rsplit('.', 1)[-1].lower()
    file_path = f"{bucket}/{owner_id}-{uuid.uuid4().hex}.{ext}"
    target = os.path.join(current_app.config['UPLOAD_FOLDER'], bucket)
    try:
        os.makedirs(target, exist_ok=True)
        with open(os.path.join(current_app.config['UPLOAD_FOLDER'], file_path), 'wb') as fh:
            fh.write(data)
    except OSError as e:
        raise StorageError(str(e)) from e
    return file_path


def public_url(file_path):
    return url_for('uploaded_file', filename=file_path)


def remove(file_path):
    full_path = os.path.join(current_app.config['UPLOAD_FOLDER'], file_path)
    if os.path.exists(full_path):
        os.remove(full_path)
