#!/usr/bin/env python3
"""
Docflow Entry Point

Starts the FastAPI server for the document workflow engine.
"""

import sys

from docflow.api import run_server
from docflow.config import get_config
from docflow.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Docflow workflow engine...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=config.api_reload)
    except KeyboardInterrupt:
        print("\nShutting down Docflow...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
