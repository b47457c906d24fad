# sync_tree_orders/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sync_tree_orders.config import ALLOWED_ORIGINS
from sync_tree_orders.logging_config import setup_logging
from sync_tree_orders.middleware import RequestIDMiddleware
from sync_tree_orders.routes.accounts import router as accounts_router
from sync_tree_orders.routes.cron import router as cron_router
from sync_tree_orders.routes.health import router as health_router
from sync_tree_orders.routes.metrics import router as metrics_router
from sync_tree_orders.routes.webhooks import router as webhooks_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Tree Orders Sync API",
    description="Syncs and reconciles tree orders sold through hotel property-management systems",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(accounts_router, tags=["Accounts"])
app.include_router(webhooks_router, tags=["Webhooks"])
app.include_router(cron_router, tags=["Cron"])
