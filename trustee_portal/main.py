"""
Trustee Portal - Main Entry Point
"""

import uvicorn

from trustee_portal.app import create_app
from trustee_portal.core.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "trustee_portal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )
