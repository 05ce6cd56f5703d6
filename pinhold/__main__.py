"""
Entry point for running pinhold via `python -m pinhold`.

Starts the FastAPI server with uvicorn.
"""

import uvicorn

from .config import config


def main():
    """Run the pinhold server."""
    uvicorn.run(
        "pinhold.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
