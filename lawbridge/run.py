#!/usr/bin/env python3
"""
Quick runner for LawBridge
==========================

Usage:
    python -m lawbridge.run
"""

import uvicorn

if __name__ == "__main__":
    print("Starting LawBridge...")
    print("API docs:     http://localhost:8000/docs")
    print("Health:       http://localhost:8000/health")
    print("Live channel: ws://localhost:8000/ws?token=<access token>")
    print()

    uvicorn.run(
        "lawbridge.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
