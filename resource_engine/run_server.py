#!/usr/bin/env python3
"""
Development server launcher.

Configures logging from the environment and serves the resource optimization
API with uvicorn.
"""

import os

from resource_engine.config import configure_logging, get_config


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    configure_logging(config.log_level)
    uvicorn.run(
        "resource_engine.api:create_app",
        factory=True,
        host=os.getenv("RESOPT_HOST", "127.0.0.1"),
        port=int(os.getenv("RESOPT_PORT", "8000")),
        reload=False,
    )
