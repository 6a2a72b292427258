# device_warnings/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from device_warnings.core import config
from device_warnings.core.database import async_session_maker, create_db_and_tables
from device_warnings.core.logging import configure_logging
from device_warnings.services.change_feed import ChangeFeed
from device_warnings.services.data_retention import RetentionSweeper
from device_warnings.services.delivery import build_delivery_from_config
from device_warnings.services.dispatcher import NotificationDispatcher
from device_warnings.services.escalation import EscalationScheduler
from device_warnings.services.processor import NotificationProcessor
from device_warnings.services.rules import RuleSetResolver
from device_warnings.services.warning_engine import WarningStateEngine

configure_logging()
logger = logging.getLogger(__name__)

# Process-wide services; routers reach them through the dependency functions below
change_feed = ChangeFeed()
escalation_scheduler = EscalationScheduler()
rule_resolver = RuleSetResolver()
warning_engine = WarningStateEngine(async_session_maker, escalation_scheduler, change_feed)
dispatcher = NotificationDispatcher(async_session_maker, build_delivery_from_config())
sweeper = RetentionSweeper(async_session_maker)
processor = NotificationProcessor(dispatcher, sweeper)


async def get_db():
    async with async_session_maker() as session:
        yield session


def get_state_engine() -> WarningStateEngine:
    return warning_engine


def get_rule_resolver() -> RuleSetResolver:
    return rule_resolver


def get_processor() -> NotificationProcessor:
    return processor


def get_sweeper() -> RetentionSweeper:
    return sweeper


app = FastAPI(title="Device Warnings Server")

# Dashboards and ingestion services may run on other hosts
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import routers after the dependency functions above exist
from device_warnings.routers import admin_router, devices_router, warnings_router, websocket_router, broadcast_change

app.include_router(devices_router)
app.include_router(warnings_router)
app.include_router(admin_router)
app.include_router(websocket_router)


@app.get("/health")
async def health():
    return {"status": "ok", "processor_running": processor.is_running}


@app.on_event("startup")
async def on_startup():
    await create_db_and_tables()
    logger.info("Tables created or already exist.")

    if config.WARNING_RULES_PATH:
        rule_resolver.load_file(config.WARNING_RULES_PATH)
    else:
        logger.info("WARNING_RULES_PATH not set; only rules sent with observations apply")

    change_feed.subscribe(broadcast_change)

    if config.START_PROCESSOR:
        processor.start()


@app.on_event("shutdown")
async def on_shutdown():
    if processor.is_running:
        await processor.stop()
    await change_feed.drain()
