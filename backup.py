"""Scheduling decisions for device backups and the daily email report.

The monitor state is an explicit value passed in and returned, never a
module global, so every decision is a pure function of its inputs.

These are used by the device-side backup agent; the trigger service
itself never schedules backups.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

BACKUP_JOB_ID = "periodic_backup"
EMAIL_REPORT_JOB_ID = "daily_email_report"

BACKUP_INTERVALS_MINUTES = (120, 360, 480, 720, 1440)
BACKUP_DEBOUNCE = timedelta(seconds=30)

NETWORK_WIFI = "WiFi"
NETWORK_MOBILE = "Mobile"
NETWORK_ETHERNET = "Ethernet"
NETWORK_NONE = "None"


@dataclass(frozen=True)
class MonitorState:
    running: bool = False
    last_trigger_at: Optional[datetime] = None


def validate_interval(interval_minutes: int) -> int:
    if interval_minutes not in BACKUP_INTERVALS_MINUTES:
        raise ValueError(
            f"Invalid backup interval. Allowed values: {BACKUP_INTERVALS_MINUTES}"
        )
    return interval_minutes


def next_periodic_trigger(now: datetime, interval_minutes: int) -> datetime:
    return now + timedelta(minutes=validate_interval(interval_minutes))


def next_daily_trigger(now: datetime, hour: int, minute: int) -> datetime:
    """Today at ``hour:minute``, or tomorrow if that time is not in the future."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def scheduled_backup_decision(wifi_only: bool, network_type: str) -> Tuple[bool, str]:
    if wifi_only and network_type != NETWORK_WIFI:
        return False, "wifi_required"
    if network_type == NETWORK_NONE:
        return False, "no_network"
    return True, "ok"


def start_monitor(state: MonitorState) -> MonitorState:
    return replace(state, running=True)


def stop_monitor(state: MonitorState) -> MonitorState:
    return replace(state, running=False)


def on_network_change(
    state: MonitorState, network_type: str, now: datetime
) -> Tuple[MonitorState, bool]:
    """Decide whether a connectivity change should wake the app for a backup."""
    if not state.running or network_type != NETWORK_WIFI:
        return state, False

    if state.last_trigger_at is not None and now - state.last_trigger_at < BACKUP_DEBOUNCE:
        remaining = BACKUP_DEBOUNCE - (now - state.last_trigger_at)
        logger.debug("Skipping backup trigger, debounce active for %ss", remaining.seconds)
        return state, False

    logger.info("WiFi connected, triggering backup")
    return replace(state, last_trigger_at=now), True


class AlarmScheduler:
    def __init__(
        self,
        on_backup: Callable[[], None],
        on_email_report: Callable[[], None],
        network_probe: Callable[[], str],
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.on_backup = on_backup
        self.on_email_report = on_email_report
        self.network_probe = network_probe
        self.scheduler = scheduler or BackgroundScheduler()
        self.wifi_only = True

    def schedule_periodic_backup(
        self, interval_minutes: int, wifi_only: bool = True, now: Optional[datetime] = None
    ) -> datetime:
        next_run = next_periodic_trigger(now or datetime.now(), interval_minutes)
        self.wifi_only = wifi_only
        self.scheduler.add_job(
            self.run_scheduled_backup,
            IntervalTrigger(minutes=interval_minutes),
            id=BACKUP_JOB_ID,
            replace_existing=True,
        )
        logger.info(
            "Backup scheduled every %s minutes (wifi only: %s), next at %s",
            interval_minutes, wifi_only, next_run,
        )
        return next_run

    def cancel_periodic_backup(self) -> bool:
        return self._cancel(BACKUP_JOB_ID)

    def schedule_daily_email_report(
        self, hour: int, minute: int, now: Optional[datetime] = None
    ) -> datetime:
        next_run = next_daily_trigger(now or datetime.now(), hour, minute)
        self.scheduler.add_job(
            self.run_email_report,
            CronTrigger(hour=hour, minute=minute),
            id=EMAIL_REPORT_JOB_ID,
            replace_existing=True,
        )
        logger.info("Daily email report scheduled at %02d:%02d, next at %s", hour, minute, next_run)
        return next_run

    def cancel_daily_email_report(self) -> bool:
        return self._cancel(EMAIL_REPORT_JOB_ID)

    def run_scheduled_backup(self) -> bool:
        network_type = self.network_probe()
        run, reason = scheduled_backup_decision(self.wifi_only, network_type)
        if not run:
            logger.info("Skipping scheduled backup on %s network: %s", network_type, reason)
            return False
        self.on_backup()
        return True

    def run_email_report(self):
        self.on_email_report()

    def restore(
        self,
        interval_minutes: int,
        wifi_only: bool = True,
        report_time: Optional[Tuple[int, int]] = None,
        now: Optional[datetime] = None,
    ) -> MonitorState:
        """Re-register saved schedules after a restart and resume Wi-Fi monitoring."""
        if not self.scheduler.running:
            self.scheduler.start()
        self.schedule_periodic_backup(interval_minutes, wifi_only, now)
        if report_time is not None:
            hour, minute = report_time
            self.schedule_daily_email_report(hour, minute, now)
        logger.info("Backup schedules restored after restart")
        return start_monitor(MonitorState())

    def _cancel(self, job_id: str) -> bool:
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info("Cancelled %s", job_id)
        return True
