"""Template loader for the bucket manager UI."""

from pathlib import Path

_PKG_DIR = Path(__file__).parent
_BASE_DIR = _PKG_DIR / "templates"
_STATIC_DIR = _PKG_DIR / "static"


def _load(name):
    return (_BASE_DIR / name).read_text(encoding="utf-8")


def _render(raw, context):
    out = raw
    for key, value in context.items():
        out = out.replace("{{" + key + "}}", str(value))
    return out


def render_page(title, body_html):
    css = (_STATIC_DIR / "css" / "style.css").read_text(encoding="utf-8")
    js = (_STATIC_DIR / "js" / "app.js").read_text(encoding="utf-8")
    base = _load("layouts/base.html")
    return _render(base, {"title": title, "css": css, "js": js, "body": body_html})


def render_main_page(bucket):
    body = _render(_load("pages/main.html"), {"bucket": bucket})
    return render_page("Bucket File Manager", body)
