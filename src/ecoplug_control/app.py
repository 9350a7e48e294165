"""Main application module for the EcoPlug control engine.

This module wires the components of the service together:
- the document store binding (Firebase Realtime Database, or in-memory for the demo),
- the single `ControlPoller`, whose APScheduler jobs evaluate every outlet on a
  fixed cadence and write idempotent control decisions,
- a Redis-based message broker (FastStream) for on-demand RPC requests.

Run `python -m ecoplug_control.app` to start the service, or
`python -m ecoplug_control.app --demo` to run a few ticks against seeded
in-memory data.
"""

import asyncio
import sys
from datetime import date, datetime, timedelta
from typing import Any, Dict
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from faststream import FastStream
from faststream.redis import RedisBroker

from ecoplug_control.control.billing import current_bill, estimated_monthly_bill, fetch_rate
from ecoplug_control.control.keys import date_key
from ecoplug_control.control.models import load_devices
from ecoplug_control.real_time.poller import ControlPoller
from ecoplug_control.store.activity_log import ActivityLog
from ecoplug_control.store.base import DocumentStore
from ecoplug_control.store.firebase_store import FirebaseStore
from ecoplug_control.store.memory_store import MemoryStore
from ecoplug_control.util.config import Settings, load_settings
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)
scheduler = BackgroundScheduler()


def job_finished_listener(event: JobExecutionEvent) -> None:
    """Listener called when a polling job completes or fails.

    Args:
        event: The `JobExecutionEvent` describing the run.
    """
    if event.exception is None:
        logger.debug("Polling job %s completed", event.job_id)


scheduler.add_listener(job_finished_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)


def build_store(settings: Settings) -> DocumentStore:
    """Creates the Firebase binding described by `settings`.

    Raises:
        ConfigurationError: If no database URL is configured.
    """
    return FirebaseStore(
        settings.database_url, settings.credentials_path, settings.store_timeout
    )


def build_poller(store: DocumentStore, settings: Settings) -> ControlPoller:
    return ControlPoller(
        store,
        settings,
        scheduler=scheduler,
        activity_log=ActivityLog(store, settings.device_logs_path),
    )


def main() -> None:
    """Main entry point for the EcoPlug control service.

    Loads the settings, starts the polling jobs and then serves RPC requests
    on the Redis broker until interrupted.
    """
    settings = load_settings()
    poller = build_poller(build_store(settings), settings)
    poller.start()

    from ecoplug_control.rpc import bind_poller, control_router

    bind_poller(poller)

    # Redis event broker setup
    password = settings.redis_password or ""
    redis_url = f"redis://:{password}@{settings.redis_host}:{settings.redis_port}"
    broker = RedisBroker(redis_url)

    # Include routers on the broker
    broker.include_router(control_router)

    # Create the app
    broker_events_app = FastStream(broker)
    try:
        asyncio.run(broker_events_app.run())
    finally:
        bind_poller(None)
        poller.shutdown()


def demo_data(today: date) -> Dict[str, Any]:
    """Three outlets covering the schedule, individual limit and group paths."""
    yesterday = today - timedelta(days=1) if today.day > 1 else today

    def logs(kwh: float) -> Dict[str, Any]:
        return {
            date_key(yesterday): {
                "total_energy": kwh,
                "avg_power": kwh * 1000 / 8,
                "peak_power": kwh * 250,
                "usage_time_hours": 8,
            }
        }

    return {
        "devices": {
            "Outlet_1": {
                "control": {"device": "off"},
                "relay_control": {"main_status": "OFF", "auto_cutoff": {"power_limit": 0}},
                "schedule": {
                    "startTime": "08:00",
                    "endTime": "17:00",
                    "frequency": "weekdays",
                },
                "office_info": {"office_room": "Registrar"},
                "appliances": "Computer",
                "daily_logs": logs(0.4),
            },
            "Outlet_2": {
                "control": {"device": "on"},
                "relay_control": {"main_status": "OFF", "auto_cutoff": {"power_limit": 0.5}},
                "office_info": {"office_room": "Accounting"},
                "appliances": "Printer",
                "daily_logs": logs(0.9),
            },
            "Outlet_3": {
                "control": {"device": "on"},
                "relay_control": {"main_status": "OFF"},
                "schedule": {"timeRange": "7:00 AM - 9:00 PM", "frequency": "daily"},
                "office_info": {"office_room": "Library"},
                "appliances": "Aircon",
                "daily_logs": logs(1.6),
            },
        },
        "combined_limit_settings": {
            "enabled": True,
            "selected_outlets": ["Outlet 3"],
            "combined_limit_watts": 1500,
            "device_control": "on",
        },
        "rates": {"canoreco": {"rate": 9.3}},
    }


def run_demo(ticks: int = 2) -> MemoryStore:
    """Runs a few ticks against seeded in-memory data and logs the outcome."""
    settings = load_settings()
    now = datetime.now(ZoneInfo(settings.timezone))
    store = MemoryStore(demo_data(now.date()))
    poller = ControlPoller(
        store,
        settings,
        scheduler=BackgroundScheduler(),
        activity_log=ActivityLog(store, settings.device_logs_path),
    )

    for tick in range(ticks):
        report = poller.run_tick(now)
        logger.info("Demo tick %d: %s", tick + 1, report.to_dict())

    devices = load_devices(store.fetch(settings.devices_path)).values()
    rate = fetch_rate(store, settings.rate_path, settings.default_rate_per_kwh)
    logger.info(
        "Current bill %.2f, estimated monthly bill %.2f",
        current_bill(devices, rate, now.date()),
        estimated_monthly_bill(devices, rate, now.date()),
    )
    return store


if __name__ == "__main__":
    if "--demo" in sys.argv[1:]:
        run_demo()
    else:
        main()
