#!/usr/bin/env python3

import uvicorn

from apy_monitor.config import get_settings
from apy_monitor.main import app

if __name__ == "__main__":
    settings = get_settings()
    print("Starting APY monitor...")
    print(f"Server will be available at: http://localhost:{settings.PORT}")
    print("Press Ctrl+C to stop the server")

    try:
        uvicorn.run(
            app,
            host=settings.HOST,
            port=settings.PORT,
            reload=False,
            log_level=settings.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
