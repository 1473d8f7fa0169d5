from __future__ import annotations

import os

import uvicorn

from intent_crawler.app import app


def main() -> None:
    host = os.getenv("INTENT_CRAWLER_HOST", "0.0.0.0")
    port = int(os.getenv("INTENT_CRAWLER_PORT", "3000"))
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
