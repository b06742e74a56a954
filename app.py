import asyncio
import logging
import os
import time
import uuid
from io import BytesIO

from flask import Flask, request, send_file, render_template_string, jsonify

from nupsheet import (
    DocumentProcessingError,
    PreviewSession,
    Settings,
    UnsupportedModeError,
)

SETTINGS = Settings.from_env()

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = SETTINGS.max_content_length
app.config['NUPSHEET_SETTINGS'] = SETTINGS

# One preview session per uploaded document, kept in memory only
SESSIONS = {}
# Session id -> time.monotonic() of its last request
LAST_SEEN = {}


# --- HELPERS ---
def _settings():
    return app.config['NUPSHEET_SETTINGS']


def _drop_session(session_id):
    LAST_SEEN.pop(session_id, None)
    session = SESSIONS.pop(session_id, None)
    if session is not None:
        session.close()
    return session


def _evict_sessions(reserve=0):
    settings = _settings()
    now = time.monotonic()
    for session_id, seen in list(LAST_SEEN.items()):
        if now - seen > settings.session_ttl_seconds:
            app.logger.info("Evicting idle session %s", session_id)
            _drop_session(session_id)
    # Oldest first
    while SESSIONS and len(SESSIONS) + reserve > settings.max_sessions:
        session_id = min(SESSIONS, key=lambda key: LAST_SEEN.get(key, 0))
        app.logger.info("Evicting session %s (limit %d)", session_id, settings.max_sessions)
        _drop_session(session_id)


def _get_session(session_id):
    _evict_sessions()
    session = SESSIONS.get(session_id)
    if session is None:
        return None, (jsonify({'error': 'Session not found'}), 404)
    LAST_SEEN[session_id] = time.monotonic()
    return session, None


def _session_payload(session_id, session):
    current = session.current
    return {
        'id': session_id,
        'name': session.source.name if session.source else None,
        'pages': session.source.page_count if session.source else 0,
        'pages_per_sheet': int(session.mode),
        'sheets': current.sheet_count if current else 0,
        'reference': current.reference if current and not current.is_empty else None,
    }


def _download_name(name, pages_per_sheet):
    stem = os.path.splitext(name or 'document.pdf')[0] or 'document'
    suffix = f"_{int(pages_per_sheet)}up" if pages_per_sheet > 1 else ''
    return f"{stem}{suffix}.pdf"


def _read_pages_per_sheet(default):
    data = request.get_json(silent=True) if request.is_json else request.form
    if not isinstance(data, dict):
        return None, (jsonify({'error': 'Request body must be a JSON object'}), 400)
    return data.get('pages_per_sheet', default), None


# --- ERROR HANDLERS ---

@app.errorhandler(UnsupportedModeError)
def handle_unsupported_mode(e):
    return jsonify({'error': e.message}), 400


@app.errorhandler(DocumentProcessingError)
def handle_processing_error(e):
    app.logger.warning("Document processing failed: %s", e.message)
    return jsonify({'error': e.message}), 422


# --- FLASK ROUTES ---

@app.route('/')
def index():
    return render_template_string(
        HTML_TEMPLATE,
        default_pages_per_sheet=int(_settings().default_pages_per_sheet),
    )


@app.route('/upload', methods=['POST'])
def upload_file():
    if 'file' not in request.files: return jsonify({'error': 'No file part'}), 400
    file = request.files['file']
    if file.filename == '': return jsonify({'error': 'No selected file'}), 400
    if file.mimetype != 'application/pdf':
        return jsonify({'error': 'Only PDF files are supported'}), 400

    settings = _settings()
    pages_per_sheet, error = _read_pages_per_sheet(settings.default_pages_per_sheet)
    if error: return error
    session = PreviewSession(pages_per_sheet, compress=settings.compress)
    try:
        asyncio.run(session.set_source(file.read(), name=file.filename))
    except Exception:
        session.close()
        raise

    _evict_sessions(reserve=1)
    session_id = str(uuid.uuid4())
    SESSIONS[session_id] = session
    LAST_SEEN[session_id] = time.monotonic()
    app.logger.info("Created session %s for %s", session_id, file.filename)
    return jsonify(_session_payload(session_id, session))


@app.route('/sessions/<session_id>/pages-per-sheet', methods=['POST'])
def set_pages_per_sheet(session_id):
    session, error = _get_session(session_id)
    if error: return error
    pages_per_sheet, error = _read_pages_per_sheet(None)
    if error: return error
    asyncio.run(session.set_mode(pages_per_sheet))
    return jsonify(_session_payload(session_id, session))


@app.route('/sessions/<session_id>', methods=['GET'])
def get_session(session_id):
    session, error = _get_session(session_id)
    if error: return error
    return jsonify(_session_payload(session_id, session))


@app.route('/sessions/<session_id>', methods=['DELETE'])
def delete_session(session_id):
    session = _drop_session(session_id)
    if session is None: return jsonify({'error': 'Session not found'}), 404
    return jsonify({'id': session_id, 'closed': True})


def _send_output(session_id, reference, as_attachment):
    session, error = _get_session(session_id)
    if error: return error
    data = session.lookup(reference)
    if not data: return jsonify({'error': 'Output not available'}), 404
    return send_file(
        BytesIO(data),
        mimetype='application/pdf',
        as_attachment=as_attachment,
        download_name=_download_name(session.source.name, session.mode),
    )


@app.route('/preview/<session_id>/<reference>', methods=['GET'])
def preview(session_id, reference):
    return _send_output(session_id, reference, as_attachment=False)


@app.route('/download/<session_id>/<reference>', methods=['GET'])
def download(session_id, reference):
    return _send_output(session_id, reference, as_attachment=True)


# --- FRONTEND TEMPLATE ---
HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en" class="dark">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>nupsheet</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <script>
        tailwind.config = {
            darkMode: 'class',
        }
    </script>
    <style>
        body { font-family: 'Segoe UI', sans-serif; }
        .drag-active { border-color: #3b82f6; background-color: rgba(59, 130, 246, 0.1); }
    </style>
</head>
<body class="bg-slate-950 text-slate-200">
    <div class="mx-auto grid grid-cols-1 h-screen md:grid-cols-2">
        <div class="w-full h-full bg-black">
            <div id="status" class="hidden p-8 text-center text-slate-400 animate-pulse">Processing...</div>
            <iframe id="preview" title="PDFPreview" class="hidden w-full h-full"></iframe>
        </div>
        <div class="flex w-full h-full bg-black">
            <div class="m-auto max-w-xs space-y-6">
                <label id="drop" class="flex w-full cursor-pointer items-center justify-center rounded-md border-2 border-dashed border-gray-200 p-6 transition-all">
                    <span id="file-label" class="text-gray-400">Drop a PDF or click to select</span>
                    <input id="file" type="file" accept="application/pdf" class="sr-only">
                </label>
                <fieldset class="flex gap-4 justify-center">
                    <legend class="text-xs font-bold text-slate-500 uppercase tracking-wider mb-2">Pages per sheet</legend>
                    {% for n in [1, 2, 4] %}
                    <label class="flex items-center gap-2">
                        <input type="radio" name="pages_per_sheet" value="{{ n }}" {% if n == default_pages_per_sheet %}checked{% endif %}>
                        <span>{{ n }}</span>
                    </label>
                    {% endfor %}
                </fieldset>
                <a id="download" class="hidden block text-center py-3 bg-blue-600 hover:bg-blue-500 text-white font-bold rounded-xl">Download PDF</a>
                <p id="error" class="hidden text-sm text-red-400"></p>
            </div>
        </div>
    </div>

    <script>
        let sessionId = null;
        let latest = 0;

        const $ = (id) => document.getElementById(id);
        const pagesPerSheet = () => document.querySelector('input[name=pages_per_sheet]:checked').value;

        function setProcessing(active) {
            $('status').classList.toggle('hidden', !active);
            if (active) $('preview').classList.add('hidden');
        }

        function show(data, ticket) {
            if (ticket !== latest) return;
            setProcessing(false);
            $('error').classList.add('hidden');
            if (!data.reference) {
                $('preview').classList.add('hidden');
                $('download').classList.add('hidden');
                return;
            }
            $('preview').src = `/preview/${data.id}/${data.reference}`;
            $('preview').classList.remove('hidden');
            $('download').href = `/download/${data.id}/${data.reference}`;
            $('download').classList.remove('hidden');
        }

        function fail(message, ticket) {
            if (ticket !== latest) return;
            setProcessing(false);
            $('preview').classList.add('hidden');
            $('download').classList.add('hidden');
            $('error').textContent = message;
            $('error').classList.remove('hidden');
        }

        async function request(url, options) {
            const ticket = ++latest;
            setProcessing(true);
            try {
                const res = await fetch(url, options);
                const data = await res.json();
                if (!res.ok) throw new Error(data.error || 'Processing failed');
                sessionId = data.id;
                show(data, ticket);
            } catch (err) { fail(err.message, ticket); }
        }

        async function upload(file) {
            if (!file || file.type !== 'application/pdf') return;
            $('file-label').textContent = file.name;
            if (sessionId) fetch(`/sessions/${sessionId}`, { method: 'DELETE' });
            const fd = new FormData();
            fd.append('file', file);
            fd.append('pages_per_sheet', pagesPerSheet());
            await request('/upload', { method: 'POST', body: fd });
        }

        $('file').addEventListener('change', (e) => upload(e.target.files[0]));
        $('drop').addEventListener('dragover', (e) => { e.preventDefault(); $('drop').classList.add('drag-active'); });
        $('drop').addEventListener('dragleave', () => $('drop').classList.remove('drag-active'));
        $('drop').addEventListener('drop', (e) => { e.preventDefault(); $('drop').classList.remove('drag-active'); upload(e.dataTransfer.files[0]); });
        document.querySelectorAll('input[name=pages_per_sheet]').forEach((radio) => radio.addEventListener('change', () => {
            if (!sessionId) return;
            request(`/sessions/${sessionId}/pages-per-sheet`, {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ pages_per_sheet: Number(pagesPerSheet()) }),
            });
        }));
    </script>
</body>
</html>
"""

if __name__ == '__main__':
    logging.basicConfig(
        level=SETTINGS.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("Starting Flask Server...")
    print(f"Open http://{SETTINGS.host}:{SETTINGS.port} in your browser")
    app.run(host=SETTINGS.host, port=SETTINGS.port)
