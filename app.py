import io, os, json, uuid, threading
from collections import OrderedDict
from flask import Flask, request, jsonify, send_file
from werkzeug.utils import secure_filename
from dotenv import load_dotenv

import converter as cv
import gemini, ingest, workflow
from article import Metadata, merge_suggestion

load_dotenv()

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 20 * 1024 * 1024  # 20MB max
app.config['BOILERPLATE'] = cv.Boilerplate.from_env()
app.config['MAX_JOBS'] = int(os.environ.get('MAX_JOBS', 200))

# job id → workflow.Session, least recently touched first
JOBS = OrderedDict()
_jobs_lock = threading.Lock()


def _flag(name, default='true'):
    return request.form.get(name, default).lower() == 'true'

def _read_upload():
    """Uploaded .docx → (filename, raw text). Returns an error response instead on bad input."""
    if 'file' not in request.files:
        return None, (jsonify({'error': 'No file uploaded. Use field name: file'}), 400)
    f = request.files['file']
    if not f.filename or not ingest.is_docx(f.filename):
        return None, (jsonify({'error': 'Only .docx files allowed'}), 400)
    try:
        text = ingest.extract_text(f.read())
    except ingest.IngestionError as e:
        app.logger.warning('ingestion failed for %s: %s', f.filename, e)
        return None, (jsonify({'error': str(e)}), 422)
    return (secure_filename(f.filename), text), None

def _suggest(text, md):
    """Overlay the Gemini suggestion onto md; failures become a warning string."""
    try:
        return merge_suggestion(md, gemini.suggest_metadata(text)), ''
    except gemini.SuggestionError as e:
        app.logger.warning('metadata suggestion failed: %s', e)
        return merge_suggestion(md, {}), str(e)

def _get_job(job_id):
    with _jobs_lock:
        return JOBS.get(job_id)

def _put_job(job_id, session):
    with _jobs_lock:
        JOBS[job_id] = session
        JOBS.move_to_end(job_id)
        while len(JOBS) > app.config['MAX_JOBS']:
            old_id, _ = JOBS.popitem(last=False)
            app.logger.info('evicted job %s', old_id)

def _job_json(job_id, session, **extra):
    return jsonify({'job': job_id, 'step': session.step.value, **extra})

def _serialize(md, text):
    return cv.build_xml(md, text, boilerplate=app.config['BOILERPLATE'])

def _xml_response(xml):
    return send_file(io.BytesIO(xml.encode('utf-8')), mimetype=cv.OUTPUT_MIMETYPE,
                     as_attachment=True, download_name=cv.OUTPUT_FILENAME)


@app.errorhandler(workflow.InvalidTransition)
def invalid_transition(e):
    return jsonify({'error': str(e)}), 409

@app.errorhandler(cv.SerializationError)
def serialization_failed(e):
    app.logger.exception('XML generation failed')
    return jsonify({'error': f'XML generation failed: {e}'}), 500


# ============================================================
# WORKFLOW API
# ============================================================
@app.route('/api/upload', methods=['POST'])
def api_upload():
    upload, err = _read_upload()
    if err: return err
    _, text = upload

    md, warning = _suggest(text, Metadata()) if _flag('ai') else (merge_suggestion(Metadata(), {}), '')
    job_id = uuid.uuid4().hex
    session = workflow.uploaded(workflow.reset(), text, md, warning)
    _put_job(job_id, session)
    return _job_json(job_id, session, metadata=md.to_dict(), warning=warning)

@app.route('/api/jobs/<job_id>/generate', methods=['POST'])
def api_generate(job_id):
    session = _get_job(job_id)
    if session is None: return jsonify({'error': 'Unknown job'}), 404

    payload = request.get_json(silent=True)
    if payload is None: return jsonify({'error': 'Expected a JSON metadata object'}), 400
    try:
        md = Metadata.from_dict(payload)
    except TypeError as e:
        return jsonify({'error': str(e)}), 400
    missing = md.missing_fields()
    if missing: return jsonify({'error': 'Required fields are empty', 'missing': missing}), 400

    session = workflow.generated(session, md, _serialize(md, session.text))
    _put_job(job_id, session)
    return _job_json(job_id, session, xml=session.xml)

@app.route('/api/jobs/<job_id>/download')
def api_download(job_id):
    session = _get_job(job_id)
    if session is None: return jsonify({'error': 'Unknown job'}), 404
    if session.step is not workflow.Step.GENERATED:
        return jsonify({'error': 'XML has not been generated yet'}), 409
    return _xml_response(session.xml)

@app.route('/api/jobs/<job_id>/edit', methods=['POST'])
def api_edit(job_id):
    session = _get_job(job_id)
    if session is None: return jsonify({'error': 'Unknown job'}), 404
    session = workflow.edit(session)
    _put_job(job_id, session)
    return _job_json(job_id, session, metadata=session.metadata.to_dict())

@app.route('/api/jobs/<job_id>/back', methods=['POST'])
def api_back(job_id):
    session = _get_job(job_id)
    if session is None: return jsonify({'error': 'Unknown job'}), 404
    session = workflow.back(session)
    with _jobs_lock: JOBS.pop(job_id, None)
    return _job_json(job_id, session)

@app.route('/api/jobs/<job_id>', methods=['DELETE'])
def api_reset(job_id):
    with _jobs_lock: session = JOBS.pop(job_id, None)
    if session is None: return jsonify({'error': 'Unknown job'}), 404
    return _job_json(job_id, workflow.reset())


# ============================================================
# ONE-SHOT CONVERSION
# ============================================================
@app.route('/api/convert', methods=['POST'])
def api_convert():
    upload, err = _read_upload()
    if err: return err
    fname, text = upload

    md, warning = _suggest(text, Metadata()) if _flag('ai') else (merge_suggestion(Metadata(), {}), '')
    if request.form.get('metadata'):
        try:
            md = Metadata.from_dict({**md.to_dict(), **json.loads(request.form['metadata'])})
        except (ValueError, TypeError) as e:
            return jsonify({'error': f'Invalid metadata: {e}'}), 400

    xml = _serialize(md, text)
    app.logger.info('converted %s (%d authors, %.1f KB)', fname, len(md.authors), len(xml) / 1024)
    response = _xml_response(xml)
    response.headers['X-Stats'] = json.dumps({
        'authors': len(md.authors),
        'missing': md.missing_fields(),
        'warning': warning,
        'size': round(len(xml) / 1024, 1),
    })
    return response

# ============================================================
# HEALTH CHECK
# ============================================================
@app.route('/health')
def health():
    return jsonify({'status': 'ok', 'version': '1.0'})

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=False)
