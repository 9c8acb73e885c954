"""
Feature Flags - retention calculation layers and diagnostic quota.

The registry is constructed once by the application context and handed
to every component that needs it. Reads return an immutable snapshot so
a caller never sees half of a concurrent configure() call.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timezone
from typing import Any, Callable

from loguru import logger


@dataclass(frozen=True)
class FeatureFlagSet:
    # Tau layers
    use_demographics: bool = True
    use_repetition_bonus: bool = True
    use_adaptive_systems: bool = False   # master switch for the two below
    use_memory_stability: bool = False
    use_pmc: bool = False                # personalized memory calibration
    use_performance_trend: bool = True

    # Diagnostics
    enable_diagnostic_logging: bool = False
    diagnostic_log_limit: int = 80

    def is_enabled(self, flag_name: str) -> bool:
        return bool(getattr(self, flag_name, False))


FLAG_NAMES = tuple(f.name for f in fields(FeatureFlagSet))


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class FeatureFlagRegistry:
    """
    Thread-safe holder of the active FeatureFlagSet.

    Every read and write of the flags and of the diagnostic counter
    happens under the same lock.
    """

    def __init__(
        self,
        initial: FeatureFlagSet | None = None,
        clock: Callable[[], date] = _utc_today,
    ):
        self._lock = threading.Lock()
        self._flags = initial or FeatureFlagSet()
        self._clock = clock
        self._diagnostic_count = 0
        self._diagnostic_day = clock()

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> FeatureFlagRegistry:
        """Seed the registry from Settings.get_feature_flag_defaults()."""
        registry = cls(**kwargs)
        registry.configure(**settings.get_feature_flag_defaults())
        return registry

    def snapshot(self) -> FeatureFlagSet:
        with self._lock:
            return self._flags

    def is_enabled(self, flag_name: str) -> bool:
        return self.snapshot().is_enabled(flag_name)

    def configure(
        self,
        use_demographics: bool | None = None,
        use_repetition_bonus: bool | None = None,
        use_adaptive_systems: bool | None = None,
        use_memory_stability: bool | None = None,
        use_pmc: bool | None = None,
        use_performance_trend: bool | None = None,
        enable_diagnostic_logging: bool | None = None,
        diagnostic_log_limit: int | None = None,
    ) -> FeatureFlagSet:
        """
        Apply every provided value as one update.

        None leaves a flag unchanged. A non-positive diagnostic limit is
        ignored.

        Returns:
            The snapshot in effect after the update
        """
        changes: dict[str, Any] = {
            name: bool(value)
            for name, value in (
                ("use_demographics", use_demographics),
                ("use_repetition_bonus", use_repetition_bonus),
                ("use_adaptive_systems", use_adaptive_systems),
                ("use_memory_stability", use_memory_stability),
                ("use_pmc", use_pmc),
                ("use_performance_trend", use_performance_trend),
                ("enable_diagnostic_logging", enable_diagnostic_logging),
            )
            if value is not None
        }
        if diagnostic_log_limit is not None:
            if diagnostic_log_limit > 0:
                changes["diagnostic_log_limit"] = int(diagnostic_log_limit)
            else:
                logger.warning(f"Ignoring non-positive diagnostic_log_limit={diagnostic_log_limit}")

        with self._lock:
            if changes:
                self._flags = replace(self._flags, **changes)
            current = self._flags

        if changes:
            logger.debug(f"Feature flags updated: {changes}")
        return current

    def should_log_diagnostic(self) -> bool:
        """
        Admit one diagnostic line against the daily quota.

        The counter resets when the UTC day changes. Denied when
        diagnostics are disabled or the limit is reached.
        """
        with self._lock:
            day = self._clock()
            if day != self._diagnostic_day:
                self._diagnostic_day = day
                self._diagnostic_count = 0
            if not self._flags.enable_diagnostic_logging:
                return False
            if self._diagnostic_count >= self._flags.diagnostic_log_limit:
                return False
            self._diagnostic_count += 1
            return True

    def reset_diagnostic_counter(self) -> None:
        with self._lock:
            self._diagnostic_count = 0
            self._diagnostic_day = self._clock()

    @property
    def diagnostic_count(self) -> int:
        with self._lock:
            return self._diagnostic_count
