"""
Inactivity detection for the Stroop page.

After ``warning_ms`` without activity the monitor raises a warning; if the
participant does not acknowledge it within ``logout_ms`` the session is
logged out. ``bind_to_machine`` wires these signals into a
``StroopSessionMachine``: the warning pauses the machine and flags the last
trial as inactive, acknowledging resumes it, logout completes it.
"""
import logging
import re
from typing import Callable, Optional

from django.conf import settings

from promptstudy.stroop.helpers.clock import Countdown
from promptstudy.stroop.helpers.clock import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_WARNING_MS = 5 * 60 * 1000
DEFAULT_LOGOUT_MS = 30 * 1000

_DURATION_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)(ms|s|m)$")
_SECONDS_RE = re.compile(r"^[0-9]+$")
_UNIT_MS = {"ms": 1, "s": 1000, "m": 60 * 1000}


def parse_duration(value: Optional[str], fallback_ms: int) -> int:
    """
    Parse "250ms", "45s", "5m" or a bare integer number of seconds.

    Anything unparsable returns ``fallback_ms``.
    """
    if not value:
        return fallback_ms
    text = str(value).strip().lower()
    if _SECONDS_RE.match(text):
        return int(text) * 1000
    match = _DURATION_RE.match(text)
    if not match:
        return fallback_ms
    return round(float(match.group(1)) * _UNIT_MS[match.group(2)])


class InactivityMonitor:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        warning_ms: Optional[int] = None,
        logout_ms: Optional[int] = None,
        on_warning: Optional[Callable[[], None]] = None,
        on_acknowledge: Optional[Callable[[], None]] = None,
        on_logout: Optional[Callable[[], None]] = None,
    ):
        self.scheduler = scheduler
        self.warning_ms = warning_ms if warning_ms is not None else parse_duration(
            getattr(settings, "STROOP_INACTIVITY_WARNING", None), DEFAULT_WARNING_MS
        )
        self.logout_ms = logout_ms if logout_ms is not None else parse_duration(
            getattr(settings, "STROOP_INACTIVITY_LOGOUT", None), DEFAULT_LOGOUT_MS
        )
        self.on_warning = on_warning
        self.on_acknowledge = on_acknowledge
        self.on_logout = on_logout
        self._countdown: Optional[Countdown] = None
        self.warning_visible = False
        self.logged_out = False

    def start(self) -> None:
        self._arm(self.warning_ms, self._warn)

    def activity(self) -> None:
        """Participant input re-arms the warning timer, unless the warning is already up."""
        if self.warning_visible or self.logged_out:
            return
        self.start()

    def acknowledge(self) -> None:
        if not self.warning_visible:
            return
        self.warning_visible = False
        if self.on_acknowledge:
            self.on_acknowledge()
        self.start()

    def stop(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def _arm(self, duration_ms, callback) -> None:
        self.stop()
        self._countdown = Countdown(self.scheduler, duration_ms, callback)
        self._countdown.start()

    def _warn(self) -> None:
        self.warning_visible = True
        logger.info("Inactivity warning raised")
        if self.on_warning:
            self.on_warning()
        self._arm(self.logout_ms, self._logout)

    def _logout(self) -> None:
        self.warning_visible = False
        self.logged_out = True
        self._countdown = None
        logger.info("Inactivity logout")
        if self.on_logout:
            self.on_logout()


def bind_to_machine(monitor: InactivityMonitor, machine) -> InactivityMonitor:
    def on_warning():
        machine.set_paused(True)
        machine.mark_inactive()

    monitor.on_warning = on_warning
    monitor.on_acknowledge = lambda: machine.set_paused(False)
    monitor.on_logout = machine.complete
    return monitor
