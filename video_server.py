import os
import struct
import logging
import argparse
from pathlib import Path

from flask import Flask, Response, abort, redirect, render_template_string, url_for
from jinja2 import TemplateError

from video_catalog import CatalogIOError, CatalogStore, VideoNotFound, resolve
from video_stream import VideoOpenError, stream_video

# -----------------------------
# CONFIG
# -----------------------------
ASSETS_ROOT = "assets"
HOST = "0.0.0.0"
PORT = 9092

LOG_ENV = "STATIC_VIDEO_SERVER_LOG"
LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"

log = logging.getLogger(__name__)

# -----------------------------
# APP
# -----------------------------
app = Flask(__name__)


def get_store() -> CatalogStore:
    return app.config["CATALOG"]


# -----------------------------
# EMBEDDED ASSETS
# -----------------------------
INDEX_CSS = r"""
:root {
  --bg: #0b0b0c;
  --panel: rgba(20,20,22,0.85);
  --text: #f4f4f6;
  --muted: rgba(244,244,246,0.65);
  --line: rgba(244,244,246,0.12);
}
* { box-sizing: border-box; }
body {
  margin: 0;
  font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial;
  background: var(--bg);
  color: var(--text);
}
.topbar {
  display: flex;
  justify-content: space-between;
  align-items: center;
  padding: 12px 16px;
  border-bottom: 1px solid var(--line);
}
.topbar h1 { font-size: 18px; margin: 0; }
.count { color: var(--muted); font-size: 13px; margin-left: 8px; }
.btn {
  border: 1px solid var(--line);
  background: rgba(15,15,18,0.55);
  color: var(--text);
  padding: 8px 12px;
  border-radius: 14px;
  font-size: 12px;
  cursor: pointer;
}
.btn:hover { background: rgba(255,255,255,0.06); }
.layout { display: grid; grid-template-columns: minmax(220px, 1fr) 3fr; height: calc(100vh - 58px); }
.list { overflow-y: auto; border-right: 1px solid var(--line); margin: 0; padding: 0; list-style: none; }
.item { padding: 10px 12px; border-bottom: 1px solid var(--line); cursor: pointer; }
.item:hover, .item.active { background: rgba(255,255,255,0.06); }
.item .name { font-size: 13px; white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
.item .id { font-size: 12px; color: var(--muted); margin-top: 3px; }
.player { display: grid; place-items: center; background: #000; }
video { width: 100%; height: 100%; object-fit: contain; background: #000; }
.empty { padding: 24px; color: var(--muted); text-align: center; font-size: 13px; }
"""

INDEX_JS = r"""
const playerEl = document.getElementById("player");
const items = Array.from(document.querySelectorAll(".item"));

function play(item) {
  items.forEach((el) => el.classList.remove("active"));
  item.classList.add("active");
  playerEl.src = item.dataset.src;
  playerEl.play().catch(() => {});
}

items.forEach((item) => item.addEventListener("click", () => play(item)));

playerEl.addEventListener("ended", () => {
  const idx = items.findIndex((el) => el.classList.contains("active"));
  if (idx >= 0 && idx + 1 < items.length) play(items[idx + 1]);
});
"""


def _make_favicon() -> bytes:
    # 1x1 32bpp icon: ICONDIR, one ICONDIRENTRY, BITMAPINFOHEADER, pixel, AND mask
    bmp = struct.pack("<IiiHHIIiiII", 40, 1, 2, 1, 32, 0, 8, 0, 0, 0, 0)
    bmp += bytes([0xe8, 0x6b, 0x2a, 0xff]) + b"\x00" * 4
    header = struct.pack("<HHH", 0, 1, 1)
    entry = struct.pack("<BBBBHHII", 1, 1, 0, 0, 1, 32, len(bmp), 6 + 16)
    return header + entry + bmp


FAVICON = _make_favicon()

HTML = r"""
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>Static Video Server</title>
  <link rel="icon" href="{{ url_for('favicon') }}" />
  <link rel="stylesheet" href="{{ url_for('css') }}" />
</head>
<body>
  <div class="topbar">
    <h1>Videos<span class="count">{{ catalog|length }}</span></h1>
    <form method="post" action="{{ url_for('reload') }}">
      <button class="btn" type="submit">Reload</button>
    </form>
  </div>
  <div class="layout">
    <ul class="list">
    {% for entry in catalog %}
      <li class="item" data-src="{{ url_for('video', video_id=entry.identifier) }}">
        <div class="name">{{ entry.relpath }}</div>
        <div class="id">{{ entry.identifier }}</div>
      </li>
    {% else %}
      <li class="empty">No videos found in {{ catalog.root }}</li>
    {% endfor %}
    </ul>
    <div class="player">
      <video id="player" controls preload="metadata"></video>
    </div>
  </div>
  <script src="{{ url_for('script') }}"></script>
</body>
</html>
"""

# -----------------------------
# ROUTES
# -----------------------------
@app.route("/")
def index():
    catalog = get_store().snapshot()
    try:
        return render_template_string(HTML, catalog=catalog)
    except TemplateError as err:
        log.error("Failed to render template: %s", err)
        return f"Failed to render template. Error: {err}", 500


@app.route("/video/<video_id>")
def video(video_id: str):
    try:
        found = resolve(get_store(), video_id)
    except VideoNotFound:
        log.info("Unknown video requested: %s", video_id)
        abort(404)

    try:
        return stream_video(found.path, found.content_type)
    except VideoOpenError as err:
        log.error("Failed to open file: %s", err)
        return "Failed to open file", 500


@app.route("/reload", methods=["POST"])
def reload():
    try:
        get_store().reload()
    except CatalogIOError as err:
        log.exception("Reload failed, keeping previous catalog")
        return f"Failed to reload videos: {err}", 500
    return redirect(url_for("index"), code=303)


@app.route("/assets/index.js")
def script():
    return Response(INDEX_JS, mimetype="application/javascript")


@app.route("/assets/index.css")
def css():
    return Response(INDEX_CSS, mimetype="text/css")


@app.route("/favicon.ico")
def favicon():
    return Response(FAVICON, mimetype="image/x-icon")


# -----------------------------
# STARTUP
# -----------------------------
def set_up_logging(level: int):
    logging.basicConfig(level=level, format=LOG_FORMAT)


def log_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise argparse.ArgumentTypeError(f"unknown log level: {value!r}")
    return level


def env_log_level():
    """
    Level from $STATIC_VIDEO_SERVER_LOG, falling back to INFO. Returns the
    level and the rejected value, if any.
    """
    value = os.environ.get(LOG_ENV)
    if not value:
        return logging.INFO, None
    try:
        return log_level(value), None
    except argparse.ArgumentTypeError:
        return logging.INFO, value


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Serve a folder of videos over HTTP")
    parser.add_argument("-a", "--assets-root", default=ASSETS_ROOT,
                        help="Root folder containing videos (subfolders included)")
    parser.add_argument("-p", "--port", type=int, default=PORT)
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--log-level", type=log_level, default=None,
                        help=f"Logging level (default: ${LOG_ENV} or info)")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    level, rejected = args.log_level, None
    if level is None:
        level, rejected = env_log_level()
    set_up_logging(level)
    if rejected:
        log.warning("Unknown log level %s=%r, using info", LOG_ENV, rejected)

    root_dir = Path(args.assets_root).expanduser()
    if not root_dir.is_dir():
        raise SystemExit(f"Root folder does not exist or is not a directory: {root_dir}")

    store = CatalogStore(str(root_dir))
    try:
        store.load()
    except CatalogIOError as err:
        raise SystemExit(f"Failed to build video catalog: {err}")

    app.config["CATALOG"] = store

    log.info("Starting server on %s:%s", args.host, args.port)
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
