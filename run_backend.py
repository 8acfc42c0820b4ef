#!/usr/bin/env python
"""Script to run the Nowly API server."""
import os
from pathlib import Path

import uvicorn

if __name__ == "__main__":
    # Run from the project root so relative SQLite paths resolve there
    os.chdir(Path(__file__).resolve().parent)
    uvicorn.run(
        "nowly.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
    )
