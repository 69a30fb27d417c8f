"""API server entry point."""

from __future__ import annotations

import logging
import os
import sys

import uvicorn

from bandgen.api.routes import create_app
from bandgen.bootstrap import build_pipeline
from bandgen.config import PipelineConfig
from bandgen.store.sqlite import SqliteRecordStore

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)


def main() -> None:
    """Run the API server against the sqlite store at BANDGEN_DB."""
    config = PipelineConfig.from_env()
    store = SqliteRecordStore(os.environ.get("BANDGEN_DB", "bandgen.db"), config.collections)
    app = create_app(build_pipeline(config, store=store))
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
