"""Server-rendered HTML for the public prototype viewer and share pages."""

from html import escape
from typing import List, Optional

from . import models
from .utils.figma import embed_url

_STYLE = """
    body { font-family: Arial, sans-serif; margin: 0; color: #222; }
    a { color: #0a6; }
    main { max-width: 960px; margin: 32px auto; padding: 0 16px; }
    .card { padding: 16px; border: 1px solid #ddd; border-radius: 8px; margin-bottom: 12px; }
    .muted { color: #777; font-size: 14px; }
    .viewer { position: fixed; inset: 0; }
    .viewer iframe { width: 100%; height: 100%; border: 0; }
    .back { position: absolute; top: 16px; left: 16px; background: #fff; padding: 4px 12px;
            border: 1px solid #ddd; border-radius: 6px; font-size: 14px; }
"""


def _document(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <title>{escape(title)}</title>
  <style>{_STYLE}</style>
</head>
<body>
{body}
</body>
</html>
"""


def index_page() -> str:
    return _document("Prototype Share", """
  <main>
    <div class="card">
      <h1>Prototype Share</h1>
      <ul>
        <li><a href="/docs">Swagger UI</a></li>
        <li><a href="/auth/login">Sign in with Google</a></li>
      </ul>
      <p>After signing in, manage projects under <code>/api/projects</code> and share them per client with <code>/api/share/create</code>.</p>
    </div>
  </main>""")


def viewer_page(project: models.Project, embed_host: str, share: Optional[str] = None, from_page: Optional[str] = None) -> str:
    """Full-screen Figma embed, with a back link for share/app navigation."""
    back = ""
    if share:
        back = f'<a class="back" href="/share/{escape(share, quote=True)}">&larr; Back to Projects</a>'
    elif from_page:
        back = '<a class="back" href="/">&larr; All Projects</a>'
    src = escape(embed_url(project.figma_url, embed_host), quote=True)
    body = f"""  <div class="viewer">
    <iframe src="{src}" title="{escape(project.name, quote=True)}" allowfullscreen></iframe>
    {back}
  </div>"""
    return _document(f"{project.name} | Prototype", body)


def share_page(link: models.ShareLink, projects: List[models.Project]) -> str:
    label = escape(link.client_label)
    token = escape(link.token, quote=True)
    count = len(projects)
    if not projects:
        items = f'<div class="card"><h3>No projects yet</h3><p class="muted">No projects are currently available for {label}.</p></div>'
    else:
        items = "\n".join(
            f'<div class="card"><a href="/p/{escape(p.slug, quote=True)}?share={token}">{escape(p.name)}</a>'
            f'<div class="muted">Added {models.as_utc(p.created_at).date().isoformat()}</div></div>'
            for p in projects
        )
    body = f"""  <main>
    <h1>{label}</h1>
    <p class="muted">{count} project{'' if count == 1 else 's'} &middot; Shared View</p>
    {items}
  </main>"""
    return _document(f"{link.client_label} Projects", body)


def message_page(title: str, message: str) -> str:
    """Used for not-found and expired-link responses."""
    return _document(title, f"""  <main>
    <div class="card">
      <h1>{escape(title)}</h1>
      <p class="muted">{escape(message)}</p>
    </div>
  </main>""")
