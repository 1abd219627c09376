"""
Run the tabletop companion backend locally
"""
import sys

import uvicorn

from companion.core.config import settings

if __name__ == "__main__":
    print(f"Starting Tabletop Companion backend ({settings.env})")
    print(f"Python: {sys.version}")
    print(f"Live sessions: ws://127.0.0.1:8000{settings.api_prefix}/ws/session?token=<jwt>")

    try:
        uvicorn.run(
            "companion.main:app",
            host="127.0.0.1",
            port=8000,
            reload=settings.debug,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        print("\nServer stopped")
