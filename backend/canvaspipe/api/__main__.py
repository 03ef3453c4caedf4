"""API server entry point for python -m canvaspipe.api"""
import logging

import uvicorn
from canvaspipe.config import settings

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "canvaspipe.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
