import logging
import os
import uuid

from flask import Blueprint, current_app, jsonify, request, send_from_directory

logger = logging.getLogger(__name__)

uploads_bp = Blueprint('uploads', __name__)


def _allowed(filename, mimetype):
    allowed = current_app.config['ALLOWED_MEDIA_TYPES']
    ext = os.path.splitext(filename)[1].lower().lstrip('.')
    mimetype = (mimetype or '').lower()
    return ext in allowed and any(t in mimetype for t in allowed)


def track_file(state, owner, path):
    with state.lock:
        state.user_files.setdefault(owner, []).append(path)


def cleanup_user_files(state, owner):
    """Delete everything ``owner`` uploaded. Failures are logged, not raised."""
    with state.lock:
        paths = state.user_files.pop(owner, [])
    for path in paths:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError:
            logger.exception(f'Error deleting file {path}')
    return len(paths)


@uploads_bp.route('/upload', methods=['POST'])
def upload():
    media = request.files.get('media')
    if media is None or not media.filename:
        return jsonify({'error': 'No file uploaded'}), 400

    original = media.filename
    if not _allowed(original, media.mimetype):
        return jsonify({'error': 'Invalid file type'}), 400

    # _allowed has already checked the extension against the allowlist
    ext = os.path.splitext(original)[1].lower()
    filename = uuid.uuid4().hex + ext
    folder = current_app.config['UPLOAD_FOLDER']
    path = os.path.join(folder, filename)
    try:
        os.makedirs(folder, exist_ok=True)
        media.save(path)
    except OSError:
        logger.exception('Upload error')
        return jsonify({'error': 'Upload failed'}), 500

    owner = request.headers.get('user-id', 'anonymous')
    track_file(current_app.extensions['chat_state'], owner, path)
    logger.info(f'stored upload {filename} for {owner}')

    return jsonify({
        'filename': filename,
        'originalname': original,
        'mimetype': media.mimetype,
        'size': os.path.getsize(path),
        'url': f'/uploads/{filename}',
    })


@uploads_bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


@uploads_bp.app_errorhandler(413)
def too_large(_error):
    return jsonify({'error': 'File too large'}), 413
