"""
Entry point for the bangla10 progress service.

Run with:
    uvicorn main:app --reload --port 8100
    python main.py
"""
import uvicorn

from bangla10.api.main import app
from bangla10.config import get_settings

settings = get_settings()

if __name__ == "__main__":
    uvicorn.run(
        "bangla10.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
