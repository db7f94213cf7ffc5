import io
import json
import os

from dotenv import load_dotenv
from flask import Flask, request, jsonify, send_file
from werkzeug.exceptions import RequestEntityTooLarge

from edit_session import EditSession
from encoder import decode_data_url, read_image
from failures import FailureKind, InvalidInputError
from gemini_service import GeminiImageEditor, make_client
from models import RESULT_MIME_TYPE, SessionState
from prompts import PRO_TIP, PROMPT_PLACEHOLDER, SUGGESTED_PROMPTS

DOWNLOAD_NAME = "gemini-edit.png"


def build_editor():
    return GeminiImageEditor(make_client(os.environ["GEMINI_API_KEY"]))


def render_page():
    return HTML_PAGE.replace(
        "/*__SUGGESTED_PROMPTS__*/", json.dumps(SUGGESTED_PROMPTS),
    ).replace(
        "/*__PROMPT_PLACEHOLDER__*/", json.dumps(PROMPT_PLACEHOLDER),
    ).replace(
        "/*__PRO_TIP__*/", json.dumps(PRO_TIP),
    )


def create_app(editor=None, config=None):
    load_dotenv()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_UPLOAD_MB", 20)) * 1024 * 1024
    if config:
        app.config.update(config)

    if editor is None:
        editor = build_editor()
    edit_session = EditSession(editor)
    app.extensions["edit_session"] = edit_session

    def rejected(message, code, kind=FailureKind.INVALID_INPUT):
        return jsonify({
            "error": message,
            "kind": kind.value,
            "session": edit_session.snapshot(),
        }), code

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        return rejected("The uploaded file is too large", 413)

    @app.route("/")
    def index():
        return render_page()

    @app.route("/api/state")
    def state():
        return jsonify({"session": edit_session.snapshot()})

    @app.route("/api/upload", methods=["POST"])
    async def upload():
        file = request.files.get("file")
        if file is None or not file.filename:
            return rejected("No image provided", 400)

        if edit_session.state is not SessionState.IDLE:
            return rejected("Start over before uploading another image", 409)

        try:
            record = await read_image(file)
        except InvalidInputError as e:
            app.logger.info("Rejected upload %r: %s", file.filename, e)
            return rejected(e.message, 400)

        if not edit_session.load_image(record):
            return rejected("Start over before uploading another image", 409)

        return jsonify({"session": edit_session.snapshot()})

    @app.route("/api/submit", methods=["POST"])
    async def submit():
        data = request.get_json(silent=True) or {}
        prompt = data.get("prompt")

        if edit_session.state.busy:
            return jsonify({
                "accepted": False,
                "error": "A generation is already in progress",
                "session": edit_session.snapshot(),
            }), 409

        try:
            accepted = await edit_session.submit(prompt)
        except InvalidInputError as e:
            return jsonify({
                "accepted": False,
                "error": e.message,
                "kind": e.kind.value,
                "session": edit_session.snapshot(),
            }), 400
        snapshot = edit_session.snapshot()
        if snapshot["error"]:
            app.logger.warning("Generation failed: %s", snapshot["error"]["message"])
        return jsonify({"accepted": accepted, "session": snapshot})

    @app.route("/api/reset", methods=["POST"])
    def reset():
        edit_session.reset()
        return jsonify({"session": edit_session.snapshot()})

    @app.route("/api/result")
    def download_result():
        outcome = edit_session.outcome
        if outcome is None or not outcome.has_image:
            return jsonify({"error": "No result to download"}), 404

        return send_file(
            io.BytesIO(decode_data_url(outcome.image_url)),
            mimetype=RESULT_MIME_TYPE,
            as_attachment=True,
            download_name=DOWNLOAD_NAME,
        )

    return app


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Product Perfect AI</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: #0f172a;
    color: #e2e8f0;
    min-height: 100vh;
    display: flex;
    flex-direction: column;
  }

  header {
    padding: 16px 32px;
    border-bottom: 1px solid #1e293b;
    display: flex;
    align-items: center;
    gap: 10px;
  }
  header h1 { font-size: 1.05rem; font-weight: 600; color: #fff; }
  header .badge {
    font-size: 0.65rem;
    padding: 2px 8px;
    border-radius: 4px;
    background: #1e3a8a;
    color: #93c5fd;
    text-transform: uppercase;
    letter-spacing: 0.5px;
  }

  main {
    flex: 1;
    width: 100%;
    max-width: 1280px;
    margin: 0 auto;
    padding: 32px;
    display: flex;
    flex-direction: column;
    align-items: center;
    gap: 32px;
  }

  .hidden { display: none !important; }

  /* ── Error toast ── */

  .toast {
    width: 100%;
    max-width: 640px;
    background: rgba(239, 68, 68, 0.1);
    border: 1px solid rgba(239, 68, 68, 0.5);
    color: #fecaca;
    padding: 12px 16px;
    border-radius: 12px;
    font-size: 0.85rem;
    font-weight: 500;
  }

  /* ── Upload stage ── */

  .intro { text-align: center; max-width: 560px; margin-bottom: 8px; }
  .intro h2 { font-size: 2.2rem; font-weight: 700; color: #fff; margin-bottom: 12px; }
  .intro p { color: #94a3b8; font-size: 1.05rem; line-height: 1.5; }

  .dropzone {
    position: relative;
    width: 100%;
    max-width: 640px;
    border: 2px dashed #334155;
    border-radius: 16px;
    padding: 48px;
    text-align: center;
    background: rgba(30, 41, 59, 0.3);
    transition: border-color 0.2s, background 0.2s, transform 0.2s;
  }
  .dropzone:hover { border-color: #475569; background: rgba(30, 41, 59, 0.5); }
  .dropzone.dragging { border-color: #3b82f6; background: rgba(59, 130, 246, 0.1); transform: scale(1.02); }
  .dropzone input {
    position: absolute;
    inset: 0;
    width: 100%;
    height: 100%;
    opacity: 0;
    cursor: pointer;
  }
  .dropzone h3 { font-size: 1.1rem; color: #fff; margin-bottom: 4px; }
  .dropzone p { color: #94a3b8; font-size: 0.85rem; }
  .dropzone .formats {
    display: inline-block;
    margin-top: 14px;
    padding: 4px 12px;
    border-radius: 999px;
    background: rgba(51, 65, 85, 0.5);
    border: 1px solid #334155;
    font-size: 0.72rem;
    color: #cbd5e1;
  }

  /* ── Editor stage ── */

  .editor {
    width: 100%;
    display: grid;
    grid-template-columns: 1fr 2fr;
    gap: 32px;
  }
  @media (max-width: 1000px) { .editor { grid-template-columns: 1fr; } }

  .controls { display: flex; flex-direction: column; gap: 24px; }

  .card {
    background: rgba(30, 41, 59, 0.4);
    border: 1px solid rgba(51, 65, 85, 0.5);
    border-radius: 16px;
    padding: 24px;
  }

  .card-header {
    display: flex;
    justify-content: space-between;
    align-items: center;
    margin-bottom: 14px;
  }
  .card-header label { font-size: 0.85rem; font-weight: 600; color: #fff; }

  .link-btn {
    background: none;
    border: none;
    box-shadow: none;
    padding: 0;
    color: #94a3b8;
    font-size: 0.75rem;
    text-decoration: underline;
    cursor: pointer;
  }
  .link-btn:hover { color: #fff; background: none; }

  textarea {
    width: 100%;
    min-height: 110px;
    background: rgba(15, 23, 42, 0.5);
    color: #fff;
    border: 1px solid #334155;
    border-radius: 12px;
    padding: 14px;
    font-size: 0.85rem;
    font-family: inherit;
    resize: none;
    outline: none;
    transition: border-color 0.2s;
    line-height: 1.5;
  }
  textarea:focus { border-color: #3b82f6; }
  textarea::placeholder { color: #64748b; }

  .quick-title {
    margin: 16px 0 8px;
    font-size: 0.7rem;
    font-weight: 500;
    color: #64748b;
    text-transform: uppercase;
    letter-spacing: 0.08em;
  }
  .quick-prompts { display: flex; flex-wrap: wrap; gap: 8px; }
  .quick-prompts button {
    background: rgba(51, 65, 85, 0.3);
    border: 1px solid rgba(51, 65, 85, 0.5);
    color: #cbd5e1;
    font-size: 0.72rem;
    padding: 6px 12px;
    border-radius: 8px;
    box-shadow: none;
    text-align: left;
  }
  .quick-prompts button:hover { background: #334155; color: #fff; }

  button {
    background: #2563eb;
    color: #fff;
    border: none;
    border-radius: 10px;
    padding: 10px 20px;
    font-size: 0.85rem;
    font-weight: 500;
    cursor: pointer;
    transition: background 0.2s, opacity 0.2s;
  }
  button:hover { background: #1d4ed8; }
  button:disabled { opacity: 0.5; cursor: not-allowed; }

  #generateBtn {
    width: 100%;
    margin-top: 24px;
    display: flex;
    justify-content: center;
    align-items: center;
    gap: 10px;
  }

  .tip {
    padding: 16px;
    border-radius: 12px;
    background: rgba(30, 58, 138, 0.1);
    border: 1px solid rgba(59, 130, 246, 0.1);
  }
  .tip h4 { font-size: 0.85rem; color: #bfdbfe; margin-bottom: 4px; }
  .tip p { font-size: 0.75rem; color: rgba(147, 197, 253, 0.8); line-height: 1.5; }

  /* ── Viewer ── */

  .viewer {
    display: grid;
    grid-template-columns: 1fr 1fr;
    gap: 24px;
    min-height: 400px;
  }
  @media (max-width: 700px) { .viewer { grid-template-columns: 1fr; } }

  .pane {
    position: relative;
    border-radius: 16px;
    overflow: hidden;
    border: 1px solid #334155;
    background: rgba(30, 41, 59, 0.5);
    aspect-ratio: 1 / 1;
    display: flex;
    align-items: center;
    justify-content: center;
  }
  .pane img { max-width: 100%; max-height: 100%; object-fit: contain; }

  .pane-label {
    position: absolute;
    top: 16px;
    left: 16px;
    padding: 4px 12px;
    border-radius: 999px;
    background: rgba(0, 0, 0, 0.6);
    border: 1px solid rgba(255, 255, 255, 0.1);
    font-size: 0.72rem;
    font-weight: 500;
    color: #fff;
    z-index: 1;
  }
  .pane-label.result { background: rgba(37, 99, 235, 0.9); }

  .download {
    position: absolute;
    bottom: 16px;
    right: 16px;
    padding: 10px 14px;
    background: #fff;
    color: #0f172a;
    border-radius: 12px;
    font-size: 0.75rem;
    font-weight: 600;
    text-decoration: none;
    box-shadow: 0 8px 24px rgba(0, 0, 0, 0.4);
  }
  .download:hover { background: #eff6ff; }

  .placeholder { color: #64748b; font-size: 0.85rem; padding: 32px; text-align: center; }

  .note {
    margin-top: 16px;
    padding: 12px 16px;
    border-radius: 12px;
    background: #1e293b;
    color: #cbd5e1;
    font-size: 0.8rem;
    line-height: 1.5;
    white-space: pre-wrap;
  }

  .loading {
    display: flex;
    flex-direction: column;
    align-items: center;
    gap: 14px;
    color: #94a3b8;
  }
  .spinner {
    width: 48px; height: 48px;
    border: 4px solid rgba(59, 130, 246, 0.3);
    border-top-color: #3b82f6;
    border-radius: 50%;
    animation: spin 0.8s linear infinite;
  }
  .spinner.small { width: 16px; height: 16px; border-width: 2px; border-color: rgba(255,255,255,0.3); border-top-color: #fff; }
  @keyframes spin { to { transform: rotate(360deg); } }

  footer {
    padding: 24px;
    text-align: center;
    color: #64748b;
    font-size: 0.72rem;
    border-top: 1px solid rgba(30, 41, 59, 0.5);
  }
</style>
</head>
<body>
<header>
  <h1>Product Perfect AI</h1>
  <span class="badge">Gemini 2.5 Flash Image</span>
</header>

<main>
  <div class="toast hidden" id="toast"></div>

  <section id="uploadStage" class="hidden">
    <div class="intro">
      <h2>Transform Your Photos</h2>
      <p>Upload a product shot or any image, describe what you want to change, and let Gemini 2.5 Flash do the magic.</p>
    </div>
    <div class="dropzone" id="dropzone">
      <input type="file" id="fileInput" accept="image/*">
      <h3>Upload Product Photo</h3>
      <p>Drag &amp; drop or click to browse</p>
      <span class="formats">Supports JPG, PNG, WEBP</span>
    </div>
  </section>

  <section id="editorStage" class="editor hidden">
    <div class="controls">
      <div class="card">
        <div class="card-header">
          <label for="promptInput">Instructions</label>
          <button class="link-btn" id="resetBtn">Start Over</button>
        </div>
        <textarea id="promptInput" rows="4"></textarea>
        <p class="quick-title">Quick Prompts</p>
        <div class="quick-prompts" id="quickPrompts"></div>
        <button id="generateBtn" disabled>Generate</button>
      </div>
      <div class="tip">
        <h4>Pro Tip</h4>
        <p id="proTip"></p>
      </div>
    </div>

    <div>
      <div class="viewer">
        <div class="pane">
          <span class="pane-label">Original</span>
          <img id="originalImg" alt="Original Upload">
        </div>
        <div class="pane" id="resultPane">
          <span class="pane-label result">AI Result</span>
          <div id="resultBody"></div>
        </div>
      </div>
      <div class="note hidden" id="note"></div>
    </div>
  </section>
</main>

<footer>Product Perfect AI. Built with Flask &amp; Gemini.</footer>

<script>
  const SUGGESTED_PROMPTS = /*__SUGGESTED_PROMPTS__*/;
  const PROMPT_PLACEHOLDER = /*__PROMPT_PLACEHOLDER__*/;
  const PRO_TIP = /*__PRO_TIP__*/;

  const toast = document.getElementById('toast');
  const uploadStage = document.getElementById('uploadStage');
  const editorStage = document.getElementById('editorStage');
  const dropzone = document.getElementById('dropzone');
  const fileInput = document.getElementById('fileInput');
  const promptInput = document.getElementById('promptInput');
  const quickPrompts = document.getElementById('quickPrompts');
  const generateBtn = document.getElementById('generateBtn');
  const resetBtn = document.getElementById('resetBtn');
  const originalImg = document.getElementById('originalImg');
  const resultBody = document.getElementById('resultBody');
  const noteEl = document.getElementById('note');

  let session = null;
  let requestSeq = 0;
  let pendingSeq = null;
  let pollTimer = null;

  promptInput.placeholder = PROMPT_PLACEHOLDER;
  document.getElementById('proTip').textContent = PRO_TIP;

  for (const p of SUGGESTED_PROMPTS) {
    const btn = document.createElement('button');
    btn.textContent = p;
    btn.addEventListener('click', () => {
      promptInput.value = p;
      updateGenerateBtn();
    });
    quickPrompts.appendChild(btn);
  }

  async function api(path, options) {
    const res = await fetch(path, options);
    const data = await res.json();
    return { ok: res.ok, data };
  }

  function updateGenerateBtn() {
    const busy = session && session.busy;
    generateBtn.disabled = busy || !promptInput.value.trim();
    generateBtn.innerHTML = busy
      ? '<div class="spinner small"></div>Generating...'
      : 'Generate';
  }

  function render(s) {
    session = s;

    if (s.error) {
      toast.textContent = s.error.message;
      toast.classList.remove('hidden');
    } else {
      toast.classList.add('hidden');
    }

    const idle = s.state === 'idle';
    uploadStage.classList.toggle('hidden', !idle);
    editorStage.classList.toggle('hidden', idle || !s.image);

    if (idle) {
      promptInput.value = '';
      fileInput.value = '';
      updateGenerateBtn();
      return;
    }

    if (!promptInput.value && s.prompt) promptInput.value = s.prompt;
    originalImg.src = s.image.data_url;

    promptInput.disabled = s.busy;
    for (const btn of quickPrompts.querySelectorAll('button')) btn.disabled = s.busy;
    updateGenerateBtn();

    if (s.busy) {
      resultBody.innerHTML = '<div class="loading"><div class="spinner"></div>Thinking...</div>';
    } else if (s.result && s.result.image_url) {
      resultBody.innerHTML = '';
      const img = document.createElement('img');
      img.src = s.result.image_url;
      img.alt = 'AI Generated';
      resultBody.appendChild(img);
      const link = document.createElement('a');
      link.href = '/api/result';
      link.className = 'download';
      link.title = 'Download Image';
      link.textContent = 'Download';
      resultBody.appendChild(link);
    } else {
      resultBody.innerHTML = '<p class="placeholder">Enter a prompt to generate an edited version.</p>';
    }

    if (s.note) {
      noteEl.textContent = s.note;
      noteEl.classList.remove('hidden');
    } else {
      noteEl.classList.add('hidden');
    }

    schedulePoll(s);
  }

  function schedulePoll(s) {
    clearTimeout(pollTimer);
    if (s.busy && pendingSeq === null) {
      pollTimer = setTimeout(refresh, 2000);
    }
  }

  async function refresh() {
    const { data } = await api('/api/state');
    render(data.session);
  }

  async function uploadFile(file) {
    if (!file.type.startsWith('image/')) {
      alert('Please upload an image file');
      return;
    }
    const form = new FormData();
    form.append('file', file);
    try {
      const { ok, data } = await api('/api/upload', { method: 'POST', body: form });
      if (!ok) {
        alert(data.error || 'Upload failed');
        return;
      }
      render(data.session);
    } catch (err) {
      alert(err.message);
    }
  }

  async function generate() {
    const prompt = promptInput.value;
    if (!prompt.trim() || (session && session.busy)) return;

    const seq = ++requestSeq;
    pendingSeq = seq;
    render({ ...session, state: 'processing', busy: true, error: null, result: null, note: null });
    try {
      const { data } = await api('/api/submit', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ prompt }),
      });
      if (seq !== pendingSeq) return;
      pendingSeq = null;
      render(data.session);
    } catch (err) {
      if (seq !== pendingSeq) return;
      pendingSeq = null;
      await refresh();
    }
  }

  async function reset() {
    pendingSeq = null;
    const { data } = await api('/api/reset', { method: 'POST' });
    render(data.session);
  }

  dropzone.addEventListener('dragover', (e) => {
    e.preventDefault();
    dropzone.classList.add('dragging');
  });
  dropzone.addEventListener('dragleave', (e) => {
    e.preventDefault();
    dropzone.classList.remove('dragging');
  });
  dropzone.addEventListener('drop', (e) => {
    e.preventDefault();
    dropzone.classList.remove('dragging');
    if (e.dataTransfer.files && e.dataTransfer.files[0]) uploadFile(e.dataTransfer.files[0]);
  });
  fileInput.addEventListener('change', (e) => {
    if (e.target.files && e.target.files[0]) uploadFile(e.target.files[0]);
  });

  promptInput.addEventListener('input', updateGenerateBtn);
  promptInput.addEventListener('keydown', (e) => {
    if (e.key === 'Enter' && !e.shiftKey) {
      e.preventDefault();
      generate();
    }
  });
  generateBtn.addEventListener('click', generate);
  resetBtn.addEventListener('click', reset);

  refresh();
</script>
</body>
</html>
"""

if __name__ == "__main__":
    create_app().run(debug=True, port=int(os.environ.get("PORT", 5001)), threaded=True)
