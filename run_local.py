#!/usr/bin/env python
"""Local development script for running geoping."""
import os
import uvicorn

# Set environment variables for local development
os.environ.update({
    "DEBUG": "true",
    "HOST": "127.0.0.1",
    "PORT": "8001",
    "ALLOW_DEFAULT_TOKEN": "true",
    "CACHE_BACKEND": os.environ.get("CACHE_BACKEND", "memory"),
    "PROBE_REGIONS": os.environ.get("PROBE_REGIONS", '["ams", "gru", "syd"]')
})

if __name__ == "__main__":
    print("Starting geoping in development mode")
    print("API: http://127.0.0.1:8001")
    print("Docs: http://127.0.0.1:8001/docs")
    print("Default token: '1' (enabled)")
    print(f"Session cache: {os.environ['CACHE_BACKEND']}")

    # Run with auto-reload
    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=True)
