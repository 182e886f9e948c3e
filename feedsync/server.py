#!/usr/bin/env python3
"""
feedsync server entrypoint.

Run: python -m feedsync.server  (or uvicorn feedsync.app:app)
"""

from .app import app

if __name__ == "__main__":
    import uvicorn

    from .config import get_config

    config = get_config()
    uvicorn.run(app, host=config.host, port=config.port)
