"""
asgi.py -- Application assembly for NoteKeep.

This is the ONLY file that imports both api.main and web.routes. It joins the
JSON API and the server-rendered UI into a single ASGI app.

Run with:  uvicorn asgi:app --reload
"""

from pathlib import Path

from fastapi.staticfiles import StaticFiles

from api.main import app
from web.routes import router as web_router

# Mount the web UI router here, not in api/main.py.
app.include_router(web_router, tags=["Web UI"])
app.mount("/static", StaticFiles(directory=str(Path(__file__).parent / "web" / "static")), name="static")
