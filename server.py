#!/usr/bin/env python3
"""
VibeForge Server  —  HTTP :7824  |  WebSocket :7825
- One Workbench per server process (file registry + diagnostic log)
- Model calls run on short-lived threads; tokens stream to every client
- Previews run on a single dedicated thread (Playwright sync API is thread-bound)
- Sandbox diagnostics are pushed to clients as they arrive
"""
import asyncio, atexit, json, logging, signal, sys, threading
from concurrent.futures import ThreadPoolExecutor
from http.server import HTTPServer, SimpleHTTPRequestHandler

import websockets
from playwright.sync_api import Error as PWError

from vibeforge import settings
from vibeforge.archive import archive_name
from vibeforge.builder import ImageFile, set_stream_callback
from vibeforge.errors import ForgeError
from vibeforge.extractor import records_from_dicts
from vibeforge.sandbox import open_standalone
from vibeforge.workbench import Workbench

UI_DIR = settings.BASE_DIR / "ui"

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
log = logging.getLogger("server")

clients      = set()
MAIN_LOOP    = None
WORKBENCH    = Workbench()
PREVIEW_POOL = ThreadPoolExecutor(max_workers=1, thread_name_prefix="preview")


# ── Broadcast helpers ─────────────────────────────────────────────────────────

def emit(msg: dict):
    if MAIN_LOOP is None: return
    data = json.dumps(msg, ensure_ascii=False)
    async def _s():
        dead = set()
        for ws in list(clients):
            try: await ws.send(data)
            except websockets.exceptions.ConnectionClosed: dead.add(ws)
        clients.difference_update(dead)
    asyncio.run_coroutine_threadsafe(_s(), MAIN_LOOP)

def elog(lvl, txt):       emit({"type":"log",          "level":lvl,   "text":txt})
def estatus(s):           emit({"type":"status",       "status":s})
def efile(f):             emit({"type":"file",         **f.to_dict()})
def ediag(e):             emit({"type":"diagnostic",   **e.to_dict()})
def ecleared():           emit({"type":"diagnostics_cleared"})
def eerr(txt):            emit({"type":"error",        "text":txt})
def estream_start(label): emit({"type":"stream_start", "label":label})
def estream(label, tok):  emit({"type":"stream",       "label":label, "token":tok})
def estream_end(l, c):    emit({"type":"stream_end",   "label":l,     "content":c})

def efiles():
    reg = WORKBENCH.registry
    emit({"type": "files", "files": reg.to_dicts(), "active": reg.active,
          "grounding": WORKBENCH.grounding})


# ── Token streaming ───────────────────────────────────────────────────────────

_cur_stream = {"label": None, "buf": ""}

def on_token(token: str):
    if token.startswith("\x00START:"):
        label = token[7:]
        _cur_stream["label"] = label
        _cur_stream["buf"]   = ""
        estream_start(label)
    elif token == "\x00END":
        estream_end(_cur_stream["label"], _cur_stream["buf"])
        _cur_stream["label"] = None
        _cur_stream["buf"]   = ""
    else:
        _cur_stream["buf"] += token
        estream(_cur_stream["label"] or "generating…", token)

set_stream_callback(on_token)
WORKBENCH.channel.subscribe(ediag)


# ── Operations (run off the event loop) ───────────────────────────────────────

def run_preview():
    assembly = WORKBENCH.preview()
    if assembly is None:
        emit({"type": "preview", "ok": False, "document": ""})
        return
    emit({"type": "preview", "ok": assembly.ok, "document": assembly.document})
    if WORKBENCH.error:
        eerr(WORKBENCH.error)

def schedule_preview():
    future = PREVIEW_POOL.submit(run_preview)
    future.add_done_callback(_report_failure)

def _report_failure(future):
    err = future.exception()
    if err is not None:
        log.error(f"Preview crashed: {err!r}")
        eerr(f"Preview failed: {err}")

def run_generate(msg: dict):
    image = msg.get("image")
    if image:
        image = ImageFile(image.get("base64", ""), image.get("mime_type", "image/png"),
                          image.get("name", "image"))
    estatus("generating")
    ecleared()
    try:
        outcome = WORKBENCH.generate(
            msg.get("prompt", ""),
            project_type=msg.get("project_type") or None,
            image=image,
            context_files=records_from_dicts(msg.get("context_files") or []),
            search=bool(msg.get("search")),
        )
    except ValueError as e:   # unknown project_type
        eerr(str(e))
        estatus("idle")
        return
    if outcome.status == "stale":
        return
    estatus("idle")
    if not outcome.ok:
        eerr(outcome.error)
        return
    elog("INFO", f"✅ Generated {len(outcome.files)} file(s)")
    efiles()
    schedule_preview()

def run_fix():
    estatus("fixing")
    outcome = WORKBENCH.fix()
    estatus("idle")
    if outcome.status == "skipped":
        elog("INFO", "Nothing to fix: no files or no errors in the console.")
    elif not outcome.ok:
        eerr(outcome.error)
    else:
        elog("INFO", f"🔧 Fix applied to {len(outcome.files)} file(s)")
        ecleared()
        efiles()
        schedule_preview()

def run_enhance(prompt: str):
    estatus("enhancing")
    outcome = WORKBENCH.enhance(prompt)
    estatus("idle")
    if outcome.ok:
        emit({"type": "enhanced", "prompt": outcome.text})
    else:
        eerr(outcome.error)

def handle_command(msg: dict):
    kind = msg.get("type")
    if kind == "generate":
        threading.Thread(target=run_generate, args=(msg,), daemon=True).start()
    elif kind == "fix":
        threading.Thread(target=run_fix, daemon=True).start()
    elif kind == "enhance":
        threading.Thread(target=run_enhance, args=(msg.get("prompt", ""),), daemon=True).start()
    elif kind == "edit":
        name = msg.get("file_name", "")
        if WORKBENCH.edit(name, msg.get("code", "")):
            efile(WORKBENCH.registry.get(name))
            schedule_preview()
        else:
            eerr(f"No file named {name!r}")
    elif kind == "select":
        if WORKBENCH.select(msg.get("file_name", "")):
            efiles()
    elif kind == "preview":
        schedule_preview()
    elif kind == "open":
        if WORKBENCH.document:
            open_standalone(WORKBENCH.document)
        else:
            eerr("Nothing to open yet: generate and preview a project first.")
    elif kind == "clear":
        WORKBENCH.clear_diagnostics()
        ecleared()
    else:
        log.warning(f"Unknown command: {kind!r}")


# ── WebSocket handler ─────────────────────────────────────────────────────────

async def ws_handler(websocket, path=None):
    clients.add(websocket)
    log.info(f"WS connected ({len(clients)})")
    try:
        await websocket.send(json.dumps({
            "type": "log", "level": "INFO",
            "text": "✅ VibeForge connected — describe an app and click Generate"
        }))
        if WORKBENCH.registry:
            await websocket.send(json.dumps({
                "type": "files", "files": WORKBENCH.registry.to_dicts(),
                "active": WORKBENCH.registry.active, "grounding": WORKBENCH.grounding,
            }))
        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("Ignoring non-JSON message")
                continue
            if isinstance(msg, dict):
                handle_command(msg)
    except websockets.exceptions.ConnectionClosed: pass
    finally:
        clients.discard(websocket)
        log.info(f"WS disconnected ({len(clients)})")


# ── HTTP handler ──────────────────────────────────────────────────────────────

class UIHandler(SimpleHTTPRequestHandler):
    def __init__(self, *a, **k):
        super().__init__(*a, directory=str(UI_DIR), **k)
    def log_message(self, *a): pass
    def do_OPTIONS(self):
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
    def _send(self, body: bytes, ctype: str, extra: dict = None):
        self.send_response(200)
        self.send_header("Content-Type", ctype)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Cache-Control", "no-store")
        for k, v in (extra or {}).items():
            self.send_header(k, v)
        self.end_headers()
        self.wfile.write(body)
    def do_GET(self):
        if self.path == "/preview":
            self._send(WORKBENCH.document.encode("utf-8"), "text/html; charset=utf-8")
        elif self.path == "/files":
            self._send(json.dumps(WORKBENCH.registry.to_dicts()).encode(), "application/json")
        elif self.path == "/archive":
            self._send(WORKBENCH.archive(), "application/zip",
                       {"Content-Disposition": f'attachment; filename="{archive_name()}"'})
        else:
            super().do_GET()

def start_http():
    try:
        httpd = HTTPServer(("127.0.0.1", settings.UI_PORT), UIHandler)
    except OSError as e:
        log.error(f"HTTP server failed: {e}")
        return
    log.info(f"HTTP server listening on 127.0.0.1:{settings.UI_PORT}")
    httpd.serve_forever()


# ── Main ──────────────────────────────────────────────────────────────────────

async def main():
    global MAIN_LOOP
    MAIN_LOOP = asyncio.get_running_loop()
    threading.Thread(target=start_http, daemon=True).start()
    print(f"\n{'━'*46}")
    print(f"  ⚡ VibeForge Starting...")
    print(f"  ⚡ UI Server   →  http://127.0.0.1:{settings.UI_PORT}")
    print(f"  🔌 WebSocket   →  ws://127.0.0.1:{settings.WS_PORT}")
    print(f"  🏗️  Model       :  {settings.DEFAULT_MODEL}")
    print(f"  🧠 Enhance     :  {settings.ENHANCE_MODEL}")
    print(f"  🧩 Project     :  {WORKBENCH.project_type.value}")
    print(f"{'━'*46}\n")
    async with websockets.serve(ws_handler, "127.0.0.1", settings.WS_PORT):
        await asyncio.Future()


_shut = threading.Event()

def shutdown_all():
    if _shut.is_set():
        return
    _shut.set()
    print("\n🛑 Shutting down VibeForge...")
    try:
        # Browser objects belong to the preview thread.
        PREVIEW_POOL.submit(WORKBENCH.close).result(timeout=10)
        print("   ✅ Browser closed")
    except (ForgeError, PWError, TimeoutError) as e:
        log.warning(f"Browser shutdown incomplete: {e}")
    PREVIEW_POOL.shutdown(wait=False)

atexit.register(shutdown_all)

def handle_signal(sig, frame):
    shutdown_all()
    sys.exit(0)

signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)


if __name__ == "__main__":
    asyncio.run(main())
