"""DocAssist orchestrator server entry point."""

import os

import uvicorn
from dotenv import load_dotenv

# Load environment variables before the app reads its settings
load_dotenv()

if __name__ == "__main__":
    # Use 127.0.0.1 for local development; 0.0.0.0 only when other hosts must reach the API
    host = os.getenv("API_HOST", "127.0.0.1")
    port = int(os.getenv("API_PORT", 8000))
    debug = os.getenv("DEBUG", "false").lower() == "true"

    print(f"Starting DocAssist orchestrator on {host}:{port}")
    # Using the app as an import string to enable reload
    uvicorn.run("docassist.main:app", host=host, port=port, reload=debug)
