import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from loguru import logger

import auth
import db
import scanner
from config import setup_logging
from errors import (
    MedicoError,
    NotFoundError,
    ValidationError,
    medico_error_handler,
    request_validation_handler,
)
from ocr_utils import configure_tesseract, find_tesseract_path
from research_pipeline import process_research_query, submit_search
from schemas import (
    USER_SEARCH_TYPES,
    Credentials,
    DataSourceCreate,
    ResearchQueryRequest,
    ScanTextRequest,
    SearchRequest,
)

# --------------------------------------------------------
# 1. DASHBOARD UI (Search / Sources / Archive / Scanner)
# --------------------------------------------------------
HTML_UI = r"""
<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<meta name="viewport" content="width=device-width, initial-scale=1"/>
<title>Medico Analyzer</title>
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap" rel="stylesheet">
<style>
:root{
  --bg:#f5f7fb; --card:#ffffff; --primary:#2563eb; --secondary:#7c3aed; --accent:#0d9488;
  --text:#0f172a; --muted:#64748b; --border:#e2e8f0; --danger:#dc2626; --radius:14px;
  font-family:"Inter",sans-serif;
}
html,body{margin:0;padding:0;background:var(--bg);color:var(--text)}
header{display:flex;justify-content:space-between;align-items:center;padding:16px 32px;background:var(--card);border-bottom:1px solid var(--border)}
header h1{margin:0;font-size:22px;background:linear-gradient(90deg,var(--primary),var(--secondary));-webkit-background-clip:text;color:transparent}
main{max-width:1000px;margin:24px auto;padding:0 16px}
.card{background:var(--card);border:1px solid var(--border);border-radius:var(--radius);padding:20px;margin-bottom:16px}
.tabs{display:flex;gap:8px;margin-bottom:16px}
.tab{flex:1;padding:10px;border:1px solid var(--border);border-radius:10px;background:var(--card);cursor:pointer;font-weight:600}
.tab.active{border-color:var(--primary);color:var(--primary);background:#eff6ff}
.view{display:none}.view.active{display:block}
.modes{display:grid;grid-template-columns:repeat(3,1fr);gap:12px}
.mode{padding:14px;border:2px solid var(--border);border-radius:12px;cursor:pointer;text-align:left;background:var(--card)}
.mode.active{border-color:var(--primary);background:#eff6ff}
.mode small{display:block;color:var(--muted);margin-top:4px}
textarea,input,select{width:100%;box-sizing:border-box;padding:10px;border:1px solid var(--border);border-radius:10px;font:inherit;margin:6px 0}
textarea{min-height:140px}
button.primary{background:linear-gradient(90deg,var(--primary),var(--secondary));color:#fff;border:0;border-radius:10px;padding:10px 18px;font-weight:600;cursor:pointer}
button.ghost{background:transparent;border:1px solid var(--border);border-radius:10px;padding:8px 14px;cursor:pointer}
button:disabled{opacity:.6;cursor:wait}
.badge{display:inline-block;padding:2px 10px;border:1px solid var(--border);border-radius:999px;font-size:12px;color:var(--muted);margin-right:6px}
.row{display:flex;justify-content:space-between;align-items:center;gap:12px}
.grid2{display:grid;grid-template-columns:1fr 1fr;gap:12px}
.muted{color:var(--muted)}.error{color:var(--danger)}
#toast{position:fixed;right:24px;bottom:24px;display:flex;flex-direction:column;gap:8px}
.toast{background:var(--text);color:#fff;padding:12px 16px;border-radius:10px;max-width:340px;box-shadow:0 8px 24px rgba(0,0,0,.2)}
.toast.destructive{background:var(--danger)}
#auth{max-width:420px;margin:80px auto}
</style>
</head>
<body>

<section id="auth" class="card">
  <h2>Medico Analyzer</h2>
  <p class="muted">Sign in to run medical and pharma research queries.</p>
  <input id="email" type="email" placeholder="you@example.com"/>
  <input id="password" type="password" placeholder="Password (min 6 chars)"/>
  <div class="row">
    <button class="primary" onclick="authenticate('signin')">Sign In</button>
    <button class="ghost" onclick="authenticate('signup')">Create Account</button>
  </div>
</section>

<div id="app" style="display:none">
  <header>
    <h1>Medico Analyzer</h1>
    <button class="ghost" onclick="signOut()">Sign Out</button>
  </header>
  <main>
    <div class="tabs">
      <button class="tab active" data-tab="search">Search</button>
      <button class="tab" data-tab="sources">Sources</button>
      <button class="tab" data-tab="archive">Archive</button>
      <button class="tab" data-tab="scanner">Scanner</button>
    </div>

    <!-- Search -->
    <section id="view-search" class="view active">
      <div class="card">
        <h2>Select Research Mode</h2>
        <div class="modes">
          <button class="mode active" data-mode="web_search">Web Search<small>Search regulatory and clinical trial websites</small></button>
          <button class="mode" data-mode="market_analysis">Market Analysis<small>Analyze market data and trends</small></button>
          <button class="mode" data-mode="journal_summary">Journal Summary<small>Summarize scientific journals and papers</small></button>
        </div>
      </div>
      <div class="card">
        <textarea id="query" placeholder="Example: Latest FDA approvals for cardiovascular drugs in 2024, or key findings from recent clinical trials on immunotherapy..."></textarea>
        <div class="row">
          <div><span class="badge" id="source-count">0 sources connected</span><span class="badge" id="mode-badge">web search</span></div>
          <button class="primary" id="search-btn" onclick="runSearch()">Generate Research</button>
        </div>
      </div>
      <div class="card" id="search-result" style="display:none"></div>
    </section>

    <!-- Sources -->
    <section id="view-sources" class="view">
      <div class="row"><h2>Data Sources</h2><button class="primary" onclick="toggleSourceForm()">Add Source</button></div>
      <div class="card" id="source-form" style="display:none">
        <div class="grid2">
          <div><label>Source Name</label><input id="src-name" placeholder="e.g., FDA Database"/></div>
          <div><label>Source Type</label>
            <select id="src-type">
              <option value="regulatory">Regulatory</option>
              <option value="clinical_trial">Clinical Trial</option>
              <option value="journal">Scientific Journal</option>
              <option value="database">Database</option>
            </select>
          </div>
          <div><label>URL (Optional)</label><input id="src-url" placeholder="https://example.com"/></div>
          <div><label>Description</label><input id="src-desc" placeholder="Brief description of this data source"/></div>
        </div>
        <button class="primary" onclick="addSource()">Add Source</button>
        <button class="ghost" onclick="toggleSourceForm(false)">Cancel</button>
      </div>
      <div id="source-list"></div>
    </section>

    <!-- Archive -->
    <section id="view-archive" class="view">
      <h2>Report Archive</h2>
      <div id="report-list"></div>
    </section>

    <!-- Scanner -->
    <section id="view-scanner" class="view">
      <div class="card">
        <h2>Medical Report Scanner</h2>
        <p class="muted">Paste the text of a medical report or upload PDFs, images or text files to get a short research-style summary.</p>
        <textarea id="report-text"></textarea>
        <div class="row">
          <button class="primary" id="scan-btn" onclick="scanText()">Scan &amp; Summarize</button>
          <button class="ghost" onclick="clearScan()">Clear</button>
        </div>
        <input type="file" id="scan-files" multiple accept=".pdf,.png,.jpg,.jpeg,.tif,.tiff,.txt,image/*,application/pdf,text/plain"/>
        <button class="primary" id="upload-btn" onclick="scanFiles()">Upload &amp; Scan</button>
      </div>
      <div id="scan-results"></div>
    </section>
  </main>
</div>

<div id="toast"></div>

<script>
let token = localStorage.getItem("medico_token");
let searchType = "web_search";

// ---------- UI sounds ----------
let audioCtx = null;
function ensureAudio(){ if(!audioCtx) audioCtx = new (window.AudioContext || window.webkitAudioContext)(); return audioCtx; }
function playClick(volume = 0.15, frequency = 520){
  try{
    const c = ensureAudio(), o = c.createOscillator(), g = c.createGain(), now = c.currentTime;
    o.type = "sine"; o.frequency.value = frequency; g.gain.value = volume;
    o.connect(g); g.connect(c.destination); o.start();
    g.gain.setValueAtTime(volume, now); g.gain.exponentialRampToValueAtTime(0.001, now + 0.12); o.stop(now + 0.13);
  }catch(e){}
}
function playSuccess(){
  try{
    const c = ensureAudio(), now = c.currentTime, o1 = c.createOscillator(), o2 = c.createOscillator(), g = c.createGain();
    o1.frequency.value = 520; o2.frequency.value = 660; g.gain.value = 0.12;
    o1.connect(g); o2.connect(g); g.connect(c.destination);
    o1.start(now); o2.start(now + 0.02);
    g.gain.exponentialRampToValueAtTime(0.0001, now + 0.28); o1.stop(now + 0.3); o2.stop(now + 0.3);
  }catch(e){}
}

// ---------- helpers ----------
function toast(title, description = "", variant = ""){
  const el = document.createElement("div");
  el.className = "toast " + variant;
  el.innerHTML = `<strong>${escapeHtml(title)}</strong>${description ? "<div>" + escapeHtml(description) + "</div>" : ""}`;
  document.getElementById("toast").appendChild(el);
  setTimeout(() => el.remove(), 4000);
}
function escapeHtml(s){ return String(s ?? "").replace(/[&<>"']/g, c => ({"&":"&amp;","<":"&lt;",">":"&gt;",'"':"&quot;","'":"&#39;"}[c])); }
function formatDate(iso){ return new Date(iso).toLocaleDateString(undefined, {month:"short", day:"numeric", year:"numeric"}); }

async function api(path, options = {}){
  const headers = Object.assign({}, options.headers || {});
  if(token) headers["Authorization"] = "Bearer " + token;
  if(options.json !== undefined){ headers["Content-Type"] = "application/json"; options.body = JSON.stringify(options.json); }
  const res = await fetch(path, Object.assign({}, options, {headers}));
  const data = res.headers.get("content-type")?.includes("application/json") ? await res.json() : null;
  if(!res.ok){
    if(res.status === 401 && path !== "/api/auth/signin"){ showAuth(); }
    const detail = data && (data.error || (Array.isArray(data.detail) ? data.detail.map(d => d.msg).join(", ") : data.detail));
    throw new Error(detail || `Request failed (${res.status})`);
  }
  return data;
}

function renderFindings(findings){
  if(!findings || !findings.length) return "";
  return "<ul>" + findings.map(f => `<li>${escapeHtml(f)}</li>`).join("") + "</ul>";
}

// ---------- auth ----------
function showAuth(){ token = null; localStorage.removeItem("medico_token"); document.getElementById("auth").style.display = "block"; document.getElementById("app").style.display = "none"; }
function showApp(){ document.getElementById("auth").style.display = "none"; document.getElementById("app").style.display = "block"; loadSources(); }

async function authenticate(mode){
  try{
    const data = await api(`/api/auth/${mode}`, {method:"POST", json:{
      email: document.getElementById("email").value,
      password: document.getElementById("password").value
    }});
    token = data.access_token;
    localStorage.setItem("medico_token", token);
    showApp(); playSuccess();
  }catch(err){ toast("Authentication failed", err.message, "destructive"); }
}

async function signOut(){
  try{ await api("/api/auth/signout", {method:"POST"}); }catch(err){}
  showAuth();
  toast("Signed out successfully", "You have been logged out of your account");
  playSuccess();
}

// ---------- tabs ----------
document.querySelectorAll(".tab").forEach(btn => btn.addEventListener("click", () => {
  document.querySelectorAll(".tab").forEach(b => b.classList.toggle("active", b === btn));
  document.querySelectorAll(".view").forEach(v => v.classList.toggle("active", v.id === "view-" + btn.dataset.tab));
  if(btn.dataset.tab === "sources" || btn.dataset.tab === "search") loadSources();
  if(btn.dataset.tab === "archive") loadReports();
  playClick(0.12, 420);
}));

document.querySelectorAll(".mode").forEach(btn => btn.addEventListener("click", () => {
  searchType = btn.dataset.mode;
  document.querySelectorAll(".mode").forEach(b => b.classList.toggle("active", b === btn));
  document.getElementById("mode-badge").textContent = searchType.replace("_", " ");
}));

// ---------- search ----------
async function runSearch(){
  const query = document.getElementById("query").value;
  if(!query.trim()){ toast("Please enter a query", "Enter your research question or topic", "destructive"); return; }
  const btn = document.getElementById("search-btn");
  btn.disabled = true; btn.textContent = "Processing...";
  try{
    const data = await api("/api/search", {method:"POST", json:{query_text: query, search_type: searchType}});
    const box = document.getElementById("search-result");
    box.style.display = "block";
    box.innerHTML = `<h2>Research Summary</h2><h3>${escapeHtml(data.title)}</h3><p>${escapeHtml(data.summary)}</p>` +
      (data.key_findings && data.key_findings.length ? "<h4>Key Findings</h4>" + renderFindings(data.key_findings) : "");
    toast("Search completed", "Your research query has been processed successfully");
    playSuccess();
  }catch(err){ toast("Search failed", err.message, "destructive"); }
  finally{ btn.disabled = false; btn.textContent = "Generate Research"; }
}

// ---------- sources ----------
function toggleSourceForm(show){
  const form = document.getElementById("source-form");
  form.style.display = (show === undefined ? form.style.display === "none" : show) ? "block" : "none";
}

async function loadSources(){
  try{
    const sources = await api("/api/data-sources");
    const active = sources.filter(s => s.is_active);
    document.getElementById("source-count").textContent = `${active.length} sources connected`;
    const list = document.getElementById("source-list");
    if(!sources.length){ list.innerHTML = `<div class="card muted">Add your first data source to start researching</div>`; return; }
    list.innerHTML = sources.map(s => `
      <div class="card"><div class="row">
        <div><strong>${escapeHtml(s.name)}</strong> <span class="badge">${escapeHtml(s.type.replace("_", " "))}</span></div>
        <button class="ghost" onclick="deleteSource('${s.id}')">Delete</button>
      </div>
      ${s.description ? `<p class="muted">${escapeHtml(s.description)}</p>` : ""}
      ${s.url ? `<a href="${escapeHtml(s.url)}" target="_blank" rel="noopener noreferrer">${escapeHtml(s.url)}</a>` : ""}
      </div>`).join("");
  }catch(err){ toast("Failed to load sources", err.message, "destructive"); }
}

async function addSource(){
  try{
    await api("/api/data-sources", {method:"POST", json:{
      name: document.getElementById("src-name").value,
      type: document.getElementById("src-type").value,
      url: document.getElementById("src-url").value,
      description: document.getElementById("src-desc").value
    }});
    ["src-name","src-url","src-desc"].forEach(id => document.getElementById(id).value = "");
    toggleSourceForm(false);
    toast("Data source added", "Your new data source has been connected successfully");
    loadSources();
  }catch(err){ toast("Failed to add source", err.message, "destructive"); }
}

async function deleteSource(id){
  try{
    await api(`/api/data-sources/${id}`, {method:"DELETE"});
    toast("Data source removed", "The data source has been disconnected");
    loadSources();
  }catch(err){ toast("Failed to remove source", err.message, "destructive"); }
}

// ---------- archive ----------
async function loadReports(){
  try{
    const reports = await api("/api/reports");
    const list = document.getElementById("report-list");
    if(!reports.length){ list.innerHTML = `<div class="card muted">Your generated research reports will appear here</div>`; return; }
    list.innerHTML = reports.map(r => `
      <div class="card"><div class="row">
        <div><h3>${escapeHtml(r.title)}</h3>
          <span class="muted">${formatDate(r.created_at)}</span>
          ${r.search_query ? `<span class="badge">${escapeHtml(r.search_query.search_type.replace("_", " "))}</span>` : ""}
        </div>
        <button class="ghost" onclick="exportReport('${r.id}')">Export</button>
      </div>
      <p>${escapeHtml(r.summary)}</p>
      ${r.search_query && r.search_query.query_text ? `<p class="muted">${escapeHtml(r.search_query.query_text)}</p>` : ""}
      </div>`).join("");
  }catch(err){ toast("Failed to load reports", err.message, "destructive"); }
}

async function exportReport(id){
  try{
    const report = await api(`/api/reports/${id}`);
    const blob = new Blob([JSON.stringify(report, null, 2)], {type:"application/json"});
    const a = document.createElement("a");
    a.href = URL.createObjectURL(blob); a.download = `report-${id}.json`; a.click();
    URL.revokeObjectURL(a.href);
  }catch(err){ toast("Export failed", err.message, "destructive"); }
}

// ---------- scanner ----------
function renderScanResults(results){
  document.getElementById("scan-results").innerHTML = results.map(r => `
    <div class="card"><h4>${escapeHtml(r.file_name)}</h4>
    ${r.error ? `<p class="error">${escapeHtml(r.error)}</p>` :
      r.result ? `<p><strong>${escapeHtml(r.result.title)}</strong></p><p class="muted">${escapeHtml(r.result.summary)}</p>${renderFindings(r.result.key_findings)}` :
      `<p class="muted">Pending...</p>`}
    </div>`).join("");
}

function clearScan(){
  document.getElementById("report-text").value = "";
  document.getElementById("scan-files").value = "";
  renderScanResults([]);
}

async function scanText(){
  const text = document.getElementById("report-text").value;
  if(!text || text.trim().length < 20){ toast("Please paste a medical report (min 20 chars)", "", "destructive"); return; }
  const btn = document.getElementById("scan-btn");
  btn.disabled = true; btn.textContent = "Scanning...";
  try{
    const entry = await api("/api/scan", {method:"POST", json:{text}});
    renderScanResults([entry]);
    if(entry.fallback_used) toast("Fallback used", "Server summarization failed, used local summarizer");
    else toast("Report scanned", "Summary generated successfully");
  }catch(err){ toast("Error", err.message, "destructive"); }
  finally{ btn.disabled = false; btn.textContent = "Scan & Summarize"; }
}

async function scanFiles(){
  const files = Array.from(document.getElementById("scan-files").files || []);
  if(!files.length){ toast("No files selected", "", "destructive"); return; }
  const results = files.map(f => ({file_name: f.name, result: null}));
  renderScanResults(results);

  const form = new FormData();
  files.forEach(f => form.append("files", f));
  const btn = document.getElementById("upload-btn");
  btn.disabled = true;
  try{
    const res = await fetch("/api/scan/files", {method:"POST", body: form, headers: token ? {"Authorization": "Bearer " + token} : {}});
    if(!res.ok) throw new Error(`Scan failed (${res.status})`);
    const reader = res.body.getReader();
    const decoder = new TextDecoder();
    let buffer = "", index = 0;
    while(true){
      const {value, done} = await reader.read();
      if(done) break;
      buffer += decoder.decode(value, {stream: true});
      let newline;
      while((newline = buffer.indexOf("\n")) >= 0){
        const line = buffer.slice(0, newline).trim();
        buffer = buffer.slice(newline + 1);
        if(line){ results[index++] = JSON.parse(line); renderScanResults(results); }
      }
    }
    toast("Scan complete", `${index} file(s) processed`);
    playSuccess();
  }catch(err){ toast("Error", err.message, "destructive"); }
  finally{ btn.disabled = false; }
}

if(token){ api("/api/auth/me").then(showApp).catch(showAuth); } else { showAuth(); }
</script>
</body>
</html>
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    db.init_db()
    configure_tesseract()
    yield


app = FastAPI(title="Medico Analyzer", lifespan=lifespan)

app.add_exception_handler(MedicoError, medico_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------------
# 2. SERVE THE UI AT THE ROOT URL
# --------------------------------------------------------
@app.get("/", response_class=HTMLResponse)
async def serve_ui():
    return HTML_UI


# --------------------------------------------------------
# AUTH
# --------------------------------------------------------
@app.post("/api/auth/signup")
def sign_up(credentials: Credentials):
    return auth.sign_up(credentials.email, credentials.password)


@app.post("/api/auth/signin")
def sign_in(credentials: Credentials):
    return auth.sign_in(credentials.email, credentials.password)


@app.post("/api/auth/signout")
def sign_out(token: str = Depends(auth.get_current_token)):
    auth.sign_out(token)
    return {"success": True}


@app.get("/api/auth/me")
def current_user(user: dict = Depends(auth.get_current_user)):
    return user


# --------------------------------------------------------
# DATA SOURCES
# --------------------------------------------------------
@app.get("/api/data-sources")
def list_data_sources(active_only: bool = False, user: dict = Depends(auth.get_current_user)):
    return db.list_data_sources(user["id"], active_only=active_only)


@app.post("/api/data-sources")
def create_data_source(source: DataSourceCreate, user: dict = Depends(auth.get_current_user)):
    return db.create_data_source(
        user_id=user["id"],
        name=source.name,
        source_type=source.type.value,
        url=source.url,
        description=source.description,
    )


@app.delete("/api/data-sources/{source_id}")
def delete_data_source(source_id: str, user: dict = Depends(auth.get_current_user)):
    if not db.delete_data_source(user["id"], source_id):
        raise NotFoundError("Data source not found")
    return {"success": True}


# --------------------------------------------------------
# SEARCH & SUMMARIZATION
# --------------------------------------------------------
@app.post("/api/search")
def search(req: SearchRequest, user: dict = Depends(auth.get_current_user)):
    if req.search_type not in USER_SEARCH_TYPES:
        raise ValidationError(f"Unsupported search type: {req.search_type.value}")
    return submit_search(user, req.query_text, req.search_type.value)


@app.get("/api/search-queries")
def search_history(user: dict = Depends(auth.get_current_user)):
    return db.list_search_queries(user["id"])


@app.post("/api/process-research-query")
async def process_research_query_endpoint(request: Request):
    """Summarization endpoint: every failure becomes a 500 with {success: false, error}."""
    try:
        body = ResearchQueryRequest(**(await request.json()))
        return await run_in_threadpool(
            process_research_query,
            body.query_id,
            body.query_text,
            body.search_type,
            body.sources,
        )
    except Exception as e:
        message = e.message if isinstance(e, MedicoError) else str(e) or "Unknown error occurred"
        logger.error(f"Error processing research query: {message}")
        return JSONResponse(status_code=500, content={"success": False, "error": message})


# --------------------------------------------------------
# ARCHIVE
# --------------------------------------------------------
@app.get("/api/reports")
def list_reports(user: dict = Depends(auth.get_current_user)):
    return db.list_reports(user["id"])


@app.get("/api/reports/{report_id}")
def get_report(report_id: str, user: dict = Depends(auth.get_current_user)):
    report = db.get_report(user["id"], report_id)
    if report is None:
        raise NotFoundError("Report not found")
    return report


# --------------------------------------------------------
# SCANNER
# --------------------------------------------------------
@app.post("/api/scan")
def scan_text(req: ScanTextRequest):
    return scanner.scan_text(req.text)


@app.post("/api/scan/files")
async def scan_files(files: List[UploadFile] = File(...)):
    """Stream one NDJSON line per file, in upload order."""
    documents = []
    for upload in files:
        documents.append(scanner.UploadedDocument(
            file_name=upload.filename or "upload",
            content=await upload.read(),
            content_type=upload.content_type or "",
        ))

    def stream():
        for entry in scanner.scan_documents(documents):
            yield json.dumps(entry) + "\n"

    return StreamingResponse(stream(), media_type="application/x-ndjson")


# --------------------------------------------------------
# SERVICE
# --------------------------------------------------------
@app.get("/check_ocr")
async def check_ocr():
    path = find_tesseract_path()
    return {"tesseract_installed": path is not None, "path": path}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
