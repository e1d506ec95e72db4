# crmsync/main.py
from __future__ import annotations

import logging

from .entrypoints.fastapi_app import create_app

logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

app = create_app()
