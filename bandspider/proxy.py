"""Outbound identity rotation through an external VPN/proxy command."""
from __future__ import annotations

import logging
import random
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence

import requests

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND = "expresso"
DEFAULT_LOCATIONS: Sequence[int] = (
    1, 2, 4, 5, 6, 7, 8, 9,
    11, 12, 15, 16, 18, 19,
    21, 22, 23, 25, 26, 29,
    31, 32, 33, 34, 35, 36, 45,
    53, 54, 56, 70, 71, 74, 75, 78, 79,
    85, 86, 87, 89, 90, 92, 94, 95, 96, 99,
    102, 103, 104, 106, 110, 118, 119,
    120, 121, 122, 124, 126, 127, 129, 130, 134,
    145, 146, 147, 150, 153, 155, 157,
    161, 165, 166, 168, 169, 172, 178,
    181, 182, 184, 187, 188, 189,
    201, 202, 203, 204, 207, 210, 211, 212,
)


class LocationPool:
    """Random, non-repeating draw over a fixed list of locations.

    Every location is returned exactly once per cycle; the pool refills
    with the full index set once exhausted.
    """

    def __init__(self, locations: Sequence[int], rng: Optional[random.Random] = None) -> None:
        if not locations:
            raise ValueError("LocationPool requires at least one location")
        self._locations = list(locations)
        self._rng = rng or random.Random()
        self._available: List[int] = []

    def __len__(self) -> int:
        return len(self._locations)

    @property
    def remaining(self) -> int:
        return len(self._available)

    def next(self) -> int:
        if not self._available:
            self._available = list(range(len(self._locations)))
        index = self._available.pop(self._rng.randrange(len(self._available)))
        return self._locations[index]

    def release(self, location: int) -> None:
        """Return an unused location to the current cycle."""
        index = self._locations.index(location)
        if index not in self._available:
            self._available.append(index)


class IdentityProbe:
    """Reads the current public IP, to confirm a rotation actually happened."""

    def __init__(self, url: str = "https://api.ipify.org", timeout: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout

    def current_ip(self) -> Optional[str]:
        try:
            resp = requests.get(self._url, timeout=self._timeout)
            resp.raise_for_status()
            return resp.text.strip() or None
        except requests.RequestException as exc:
            LOGGER.warning("Identity probe failed: %s", exc)
            return None


class ProxyClient:
    """Mutually exclusive, rate-limited network identity switcher.

    One instance is shared by every worker. A call is declined (returns
    False) while another rotation is in flight, or within `cooldown`
    seconds of the last successful one unless forced; a declined call
    means some other worker already rotated recently enough.
    """

    def __init__(
        self,
        locations: Sequence[int] = DEFAULT_LOCATIONS,
        command: str = DEFAULT_COMMAND,
        command_timeout_ms: int = 30_000,
        cooldown: float = 15.0,
        retry_delay: float = 60.0,
        probe: Optional[IdentityProbe] = None,
        rng: Optional[random.Random] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._pool = LocationPool(locations, rng)
        self._command = command
        self._command_timeout_ms = command_timeout_ms
        self._cooldown = cooldown
        self._retry_delay = retry_delay
        self._probe = probe
        self._runner = runner
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._rotating = False
        self._last_change_time: Optional[float] = None
        self._current_location: Optional[int] = None
        self.rotations = 0

    @property
    def is_rotating(self) -> bool:
        return self._rotating

    @property
    def current_location(self) -> Optional[int]:
        return self._current_location

    @property
    def last_change_time(self) -> Optional[float]:
        return self._last_change_time

    def _in_cooldown(self) -> bool:
        return self._last_change_time is not None and (self._clock() - self._last_change_time) < self._cooldown

    def change_identity(self, force: bool = False) -> bool:
        """Switch to the next location. Returns True when the switch succeeded.

        Declined while another rotation is in flight, even with ``force=True``;
        ``force`` only skips the cooldown. A location whose command fails
        twice goes back to the pool for the current cycle.
        """
        with self._lock:
            if self._rotating:
                return False
            if not force and self._in_cooldown():
                return False
            self._rotating = True
            location = self._pool.next()

        try:
            before_ip = self._probe.current_ip() if self._probe else None
            LOGGER.debug(
                "IP changing to location %d [%d left in cycle]", location, self._pool.remaining
            )
            if not self._connect(location):
                LOGGER.warning("Retrying location %d in %.0fs", location, self._retry_delay)
                self._sleep(self._retry_delay)
                if not self._connect(location):
                    LOGGER.error("IP change to location %d gave up after retry", location)
                    with self._lock:
                        self._pool.release(location)
                    return False

            self._last_change_time = self._clock()
            self._current_location = location
            self.rotations += 1
            if self._probe:
                after_ip = self._probe.current_ip()
                if after_ip is None or after_ip == before_ip:
                    LOGGER.warning("IP change to location %d not confirmed (ip=%s)", location, after_ip)
                else:
                    LOGGER.info("IP changed %s -> %s (location %d)", before_ip, after_ip, location)
            return True
        finally:
            self._rotating = False

    def _connect(self, location: int) -> bool:
        args = [
            self._command,
            "connect",
            "--change",
            str(location),
            "--timeout",
            str(self._command_timeout_ms),
        ]
        try:
            completed = self._runner(
                args,
                capture_output=True,
                text=True,
                timeout=self._command_timeout_ms / 1000 + 5,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            LOGGER.error("IP change failed for location %d (exit %s): %s", location, exc.returncode, exc.stdout)
            return False
        except subprocess.TimeoutExpired:
            LOGGER.error("IP change timed out for location %d", location)
            return False
        except OSError as exc:
            LOGGER.error("IP change command could not run: %s", exc)
            return False

        LOGGER.debug("IP changed for location %d: %s", location, (completed.stdout or "").strip())
        return True
