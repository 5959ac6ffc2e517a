# app/main.py
from __future__ import annotations

from .entrypoints.fastapi_app import create_app

# uvicorn app.main:app --reload
app = create_app()
