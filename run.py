"""Run the pinhold service."""

import uvicorn

from pinhold.config import config

if __name__ == "__main__":
    uvicorn.run(
        "pinhold.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )
