import argparse
import logging
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from db.database import init_db
from config import load_config, configure_logging
from routes import review_router, sync_router, offline_router
from utils.connectivity import ConnectivityState
from utils.sync_queue import SyncQueue
from utils.transport import HttpMutationTransport

logger = logging.getLogger(__name__)

def build_sync_queue(config: dict, connectivity: ConnectivityState = None) -> SyncQueue:
    """Wire the queue to the configured server and the connectivity signal."""
    sync_cfg = config["sync"]
    transport = HttpMutationTransport(sync_cfg["server_url"], timeout=sync_cfg["timeout_seconds"])
    queue = SyncQueue(
        transport,
        connectivity or ConnectivityState(online=True),
        send_timeout=sync_cfg["timeout_seconds"],
        drain_on_enqueue=sync_cfg["drain_on_enqueue"],
    )
    queue.attach()
    return queue

# Startup: config, DB, crash recovery of the offline queue
@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()  # Ensures config exists
    configure_logging(config)
    init_db()
    queue = build_sync_queue(config)
    queue.recover()
    app.state.sync_queue = queue
    logger.info("ReadLtr offline core ready; %s change(s) waiting to sync", queue.get_pending_count())
    yield
    queue.detach()
    await queue.wait_idle()

app = FastAPI(title="ReadLtr", description="Offline queue and highlight review for ReadLtr", lifespan=lifespan)

# Include routers
app.include_router(review_router, prefix="/review", tags=["review"])
app.include_router(sync_router, prefix="/sync", tags=["sync"])
app.include_router(offline_router, prefix="/offline", tags=["offline"])

@app.get("/health")
async def health():
    return {"status": "ok"}

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="ReadLtr offline core")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    args = parser.parse_args()
    if args.init:
        load_config()  # Ensures config is copied if missing
        init_db()
        print("DB initialized and config copied to ~/.readltr/")
        exit(0)
    config = load_config()
    server_cfg = config["server"]
    uvicorn.run(
        "main:app",
        host=server_cfg["host"],
        port=server_cfg["port"],
        reload=args.dev,
        log_level=config["logging"]["level"].lower(),
    )
