import sys
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import Settings, settings as default_settings
from .metrics import WS_REJECTED
from .relay import ChatRelay
from .schemas import ChatMessage
from .security import OriginGuard
from .session import ChatSession


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def cors_origins(guard: OriginGuard) -> list[str]:
    if guard.allow_all:
        return ["*"]
    origins = []
    for entry in guard.allowed:
        if entry.startswith(("http://", "https://")):
            origins.append(entry)
        else:
            origins += [f"https://{entry}", f"http://{entry}"]
    return origins


def create_app(
    settings: Optional[Settings] = None, relay: Optional[ChatRelay] = None
) -> FastAPI:
    settings = settings or default_settings
    origins = (
        relay.origins if relay else OriginGuard.from_setting(settings.ALLOWED_ORIGINS)
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)
        state = relay or ChatRelay.from_settings(settings)
        await state.start()
        app.state.relay = state
        logger.info(
            f"event=startup max_history={state.history.max_history} "
            f"allow_all_origins={state.origins.allow_all}"
        )
        yield
        logger.info("event=shutdown reason=flushing_store_writes")
        await state.aclose()

    app = FastAPI(title="Chat Relay", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return INDEX_HTML

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "ok"

    # --- HTTP: recent history from the in-memory buffer ---

    @app.get("/history", response_model=List[ChatMessage])
    async def get_history(request: Request, limit: int = Query(20, ge=1)):
        history = request.app.state.relay.history
        return list(history.recent(min(limit, history.max_history)))

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # --- WS: real-time chat ---

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        state: ChatRelay = ws.app.state.relay
        client_id = f"{ws.client.host}:{ws.client.port}" if ws.client else "-"
        origin = ws.headers.get("origin")
        if not state.origins.is_allowed(origin):
            WS_REJECTED.inc()
            logger.info(
                f"client_id={client_id} event=reject reason=origin origin={origin!r}"
            )
            if "websocket.http.response" in ws.scope.get("extensions", {}):
                await ws.send_denial_response(
                    PlainTextResponse("forbidden", status_code=403)
                )
            else:
                # closing before accept answers the upgrade with 403
                await ws.close(code=1008)
            return
        await ChatSession(ws, state, client_id).run()

    return app


INDEX_HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>Chat Relay</title>
  <style>
    body { font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; margin: 20px; }
    #log { border: 1px solid #ddd; padding: 10px; height: 300px; overflow: auto; }
    input, button { font-size: 14px; padding: 6px 8px; }
    .sys { color: #666; }
    .msg { margin: 2px 0; }
  </style>
</head>
<body>
  <h2>Chat Relay</h2>
  <div>
    <label>Name <input id="user" value="alice"></label>
    <button id="connect">Connect</button>
    <button id="disconnect" disabled>Disconnect</button>
  </div>
  <div id="log"></div>
  <p>
    <input id="text" placeholder="Type message…" size="60">
    <button id="send" disabled>Send</button>
  </p>

<script>
let ws;

function line(text, cls="msg") {
  const div = document.createElement("div");
  div.className = cls;
  div.textContent = text;
  document.getElementById("log").appendChild(div);
  document.getElementById("log").scrollTop = 999999;
}

function enableConnected(state) {
  document.getElementById("send").disabled = !state;
  document.getElementById("disconnect").disabled = !state;
  document.getElementById("connect").disabled = state;
}

document.getElementById("connect").onclick = () => {
  const scheme = location.protocol === "https:" ? "wss" : "ws";
  ws = new WebSocket(`${scheme}://${location.host}/ws`);
  ws.addEventListener("open", () => {
    line("connected", "sys");
    enableConnected(true);
  });
  ws.addEventListener("close", () => {
    line("disconnected", "sys");
    enableConnected(false);
  });
  ws.addEventListener("message", (e) => {
    const obj = JSON.parse(e.data);
    const t = new Date(obj.ts * 1000).toLocaleTimeString();
    line(`[${t}] ${obj.user}: ${obj.text}`);
  });
};

document.getElementById("disconnect").onclick = () => {
  if (ws && ws.readyState <= 1) ws.close();
};

document.getElementById("send").onclick = () => {
  if (!ws || ws.readyState !== WebSocket.OPEN) return;
  const user = document.getElementById("user").value.trim() || "anon";
  const text = document.getElementById("text").value;
  if (text.trim()) ws.send(JSON.stringify({ user, text }));
  document.getElementById("text").value = "";
};

document.getElementById("text").addEventListener("keydown", (e) => {
  if (e.key === "Enter") document.getElementById("send").click();
});
</script>
</body>
</html>
"""

app = create_app()
