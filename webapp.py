"""Tweet Memento Web API.

Flask-based JSON API that loads a Twitter archive export into memory and
serves searches, per-year histograms and bounded result windows to a
front end. Each upload gets its own session; indexes live only in memory.
"""

import os
import re
import secrets
import threading
import time
from datetime import datetime
from typing import Dict, Optional

from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

from tweet_memento.archive import IndexHolder
from tweet_memento.errors import ArchiveReadError, MalformedExportError
from tweet_memento.index import SearchResult
from tweet_memento.window import MAX_VISIBLE, compute_window


app = Flask(__name__)

app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_UPLOAD_MB", 200)) * 1024 * 1024
app.config["MAX_VISIBLE"] = int(os.environ.get("MEMENTO_MAX_VISIBLE", MAX_VISIBLE))
# Sessions idle longer than this are dropped, oldest first beyond MAX_SESSIONS
app.config["SESSION_MAX_AGE_SECONDS"] = int(os.environ.get("MEMENTO_SESSION_MAX_AGE", 6 * 60 * 60))
app.config["MAX_SESSIONS"] = int(os.environ.get("MEMENTO_MAX_SESSIONS", 20))

# Session IDs are generated using secrets.token_hex(SESSION_ID_BYTES)
# which produces SESSION_ID_BYTES * 2 hex characters
SESSION_ID_BYTES = 16

ALLOWED_EXTENSIONS = {".zip"}

_sessions: Dict[str, IndexHolder] = {}
_last_access: Dict[str, float] = {}
_sessions_lock = threading.Lock()


def is_valid_session_id(session_id: str) -> bool:
    """Validate session ID format."""
    expected_length = SESSION_ID_BYTES * 2
    return bool(re.match(rf'^[a-f0-9]{{{expected_length}}}$', session_id))


def _evict_locked(now: float, max_age_seconds: int, max_sessions: int) -> int:
    """Drop expired sessions, then the least recently used beyond max_sessions.

    Caller must hold ``_sessions_lock``.
    """
    expired = [sid for sid, seen in _last_access.items() if now - seen > max_age_seconds]
    overflow = len(_last_access) - len(expired) - max_sessions
    if overflow > 0:
        live = sorted(
            (sid for sid in _last_access if sid not in expired),
            key=_last_access.get,
        )
        expired.extend(live[:overflow])
    for sid in expired:
        _sessions.pop(sid, None)
        _last_access.pop(sid, None)
    return len(expired)


def cleanup_old_sessions(now: Optional[float] = None) -> int:
    """Remove idle sessions so their indexes can be freed.

    Returns:
        Number of sessions removed.
    """
    now = time.time() if now is None else now
    with _sessions_lock:
        removed = _evict_locked(now, app.config["SESSION_MAX_AGE_SECONDS"], app.config["MAX_SESSIONS"])
    if removed:
        app.logger.info("Removed %d idle sessions", removed)
    return removed


def create_session() -> str:
    session_id = secrets.token_hex(SESSION_ID_BYTES)
    now = time.time()
    with _sessions_lock:
        # Leave room for the new session
        removed = _evict_locked(now, app.config["SESSION_MAX_AGE_SECONDS"], app.config["MAX_SESSIONS"] - 1)
        _sessions[session_id] = IndexHolder()
        _last_access[session_id] = now
    if removed:
        app.logger.info("Removed %d idle sessions", removed)
    return session_id


def get_session(session_id: str) -> Optional[IndexHolder]:
    if not is_valid_session_id(session_id):
        return None
    now = time.time()
    with _sessions_lock:
        seen = _last_access.get(session_id)
        if seen is None:
            return None
        if now - seen > app.config["SESSION_MAX_AGE_SECONDS"]:
            _sessions.pop(session_id, None)
            _last_access.pop(session_id, None)
            return None
        _last_access[session_id] = now
        return _sessions.get(session_id)


def delete_session(session_id: str) -> None:
    with _sessions_lock:
        _sessions.pop(session_id, None)
        _last_access.pop(session_id, None)


def allowed_file(filename: str) -> bool:
    """Check if a file has an allowed extension."""
    return any(filename.lower().endswith(ext) for ext in ALLOWED_EXTENSIONS)


def result_to_dict(result: SearchResult, include_json: bool = False) -> Dict:
    data = {
        "id": result.id,
        "text": result.text,
        "local_year": result.local_year,
        "local_date": result.local_date,
        "url": result.url,
        "media_urls": list(result.media_urls),
    }
    if include_json:
        data["json"] = result.json
    return data


def parse_int_arg(name: str) -> Optional[int]:
    """Parse an optional integer query parameter.

    Raises:
        ValueError: If the parameter is present but not an integer.
    """
    value = request.args.get(name, "").strip()
    if not value:
        return None
    return int(value)


def load_into(holder: IndexHolder):
    """Load the uploaded archive into ``holder``.

    Returns:
        None on success, otherwise an error response tuple.
    """
    upload_file = request.files.get("archive")
    if upload_file is None or not upload_file.filename:
        return jsonify({"error": "No archive uploaded"}), 400
    filename = secure_filename(upload_file.filename)
    if not allowed_file(filename):
        return jsonify({"error": "Upload a Twitter export .zip file"}), 400

    try:
        index = holder.load(upload_file.read())
    except (ArchiveReadError, MalformedExportError) as e:
        app.logger.warning("Failed to load %s: %s", filename, e)
        return jsonify({"error": str(e)}), 400

    if index is None:
        # A newer upload to the same session finished first
        return jsonify({"error": "Superseded by a newer upload"}), 409

    app.logger.info("Loaded %s: %d tweets, %d skipped", filename, index.count(), index.skipped_count)
    return None


@app.route("/health")
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "timestamp": datetime.now().isoformat()})


@app.route("/upload", methods=["POST"])
def upload():
    """Create a session from an uploaded export archive."""
    session_id = create_session()
    holder = get_session(session_id)
    error = load_into(holder)
    if error is not None:
        delete_session(session_id)
        return error
    return jsonify({"session_id": session_id, **holder.status()})


@app.route("/session/<session_id>/reload", methods=["POST"])
def reload(session_id):
    """Replace a session's index with a newly uploaded archive.

    On failure the previous index stays active.
    """
    holder = get_session(session_id)
    if holder is None:
        return jsonify({"error": "Session not found"}), 404
    error = load_into(holder)
    if error is not None:
        return error
    return jsonify({"session_id": session_id, **holder.status()})


@app.route("/session/<session_id>/api/search")
def api_search(session_id):
    """Search the session's index and return the visible window.

    Query parameters: ``q`` (case-sensitive substring), ``focus_year`` and
    ``max_visible``.
    """
    holder = get_session(session_id)
    if holder is None:
        return jsonify({"error": "Session not found"}), 404
    index = holder.index
    if index is None:
        return jsonify({"error": "No archive loaded"}), 404

    try:
        focus_year = parse_int_arg("focus_year")
        max_visible = parse_int_arg("max_visible")
    except ValueError:
        return jsonify({"error": "focus_year and max_visible must be integers"}), 400
    if max_visible is None:
        max_visible = app.config["MAX_VISIBLE"]
    if max_visible <= 0:
        return jsonify({"error": "max_visible must be positive"}), 400

    query = request.args.get("q", "")
    results = index.search(query)
    window = compute_window(results, focus_year=focus_year, max_visible=max_visible)

    return jsonify({
        "total": index.count(),
        "matched": len(results),
        "begin": window.begin,
        "end": window.end,
        "truncated_before": window.truncated_before,
        "truncated_after": window.truncated_after,
        "results": [result_to_dict(r) for r in window.apply(results)],
        "years": [{"year": b.year, "count": b.count} for b in index.year_histogram(results)],
    })


@app.route("/session/<session_id>/api/tweet/<tweet_id>")
def api_tweet(session_id, tweet_id):
    """Return one tweet with its raw export JSON."""
    holder = get_session(session_id)
    if holder is None or holder.index is None:
        return jsonify({"error": "Session not found"}), 404
    result = holder.index.get(tweet_id)
    if result is None:
        return jsonify({"error": "Tweet not found"}), 404
    return jsonify(result_to_dict(result, include_json=True))


def autoload(path: str) -> Optional[str]:
    """Load an export from disk into a new session (development shortcut).

    Returns:
        The session ID, or None if loading failed.
    """
    session_id = create_session()
    try:
        index = get_session(session_id).load(path)
    except (ArchiveReadError, MalformedExportError) as e:
        app.logger.error("Autoload of %s failed: %s", path, e)
        delete_session(session_id)
        return None
    app.logger.info("Autoloaded %s into session %s (%d tweets)", path, session_id, index.count())
    return session_id


def create_app():
    """Application factory for WSGI servers."""
    autoload_path = os.environ.get("MEMENTO_AUTOLOAD")
    if autoload_path:
        app.config["AUTOLOAD_SESSION_ID"] = autoload(autoload_path)
    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("DEBUG", "false").lower() == "true"
    create_app().run(host="0.0.0.0", port=port, debug=debug)
