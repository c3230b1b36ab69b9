"""Operator automation policy (auto-fan / auto-shutdown preferences)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from .config import KeeperConfig, save_config
from .core.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

POLICY_SECTION = "policy"


@dataclass(slots=True, frozen=True)
class Policy:
    auto_fan: bool = True
    auto_shutdown: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return {"auto_fan": self.auto_fan, "auto_shutdown": self.auto_shutdown}


class PolicyStore:
    """Current policy, optionally backed by the configuration file.

    Reads are lock-free: updates swap in a new frozen :class:`Policy`.
    """

    def __init__(
        self,
        policy: Optional[Policy] = None,
        *,
        config: Optional[KeeperConfig] = None,
        persist: bool = True,
    ) -> None:
        if policy is None and config is not None:
            policy = Policy(
                auto_fan=config.policy.auto_fan,
                auto_shutdown=config.policy.auto_shutdown,
            )
        self._policy = policy or Policy()
        self._config = config
        self._persist = persist and config is not None

    @classmethod
    def from_config(cls, config: KeeperConfig, *, persist: bool = True) -> "PolicyStore":
        return cls(config=config, persist=persist)

    @property
    def current(self) -> Policy:
        return self._policy

    def auto_fan_enabled(self) -> bool:
        return self._policy.auto_fan

    def auto_shutdown_enabled(self) -> bool:
        return self._policy.auto_shutdown

    def as_dict(self) -> Dict[str, bool]:
        return self._policy.as_dict()

    def update(self, values: Mapping[str, Any]) -> Policy:
        """Apply a partial policy update and persist it.

        Raises:
            ConfigurationError: On unknown keys or non-boolean values.
            OSError: If the config file cannot be written; the previous
                policy stays in effect.
        """
        changes: Dict[str, bool] = {}
        for key, value in values.items():
            if key not in ("auto_fan", "auto_shutdown"):
                raise ConfigurationError(f"Unknown policy key: {key}")
            if not isinstance(value, bool):
                raise ConfigurationError(f"Policy value for {key} must be a boolean")
            changes[key] = value

        updated = replace(self._policy, **changes)
        if updated == self._policy:
            return updated

        if self._config is not None:
            self._write_config(updated)
            if self._persist:
                try:
                    save_config(self._config)
                except OSError:
                    self._write_config(self._policy)
                    raise

        self._policy = updated
        LOGGER.info(
            "Policy updated: auto_fan=%s auto_shutdown=%s",
            updated.auto_fan,
            updated.auto_shutdown,
        )
        return updated

    def _write_config(self, policy: Policy) -> None:
        assert self._config is not None
        self._config.policy.auto_fan = policy.auto_fan
        self._config.policy.auto_shutdown = policy.auto_shutdown
        raw = self._config.raw
        if not raw.has_section(POLICY_SECTION):
            raw.add_section(POLICY_SECTION)
        raw.set(POLICY_SECTION, "auto_fan", str(policy.auto_fan).lower())
        raw.set(POLICY_SECTION, "auto_shutdown", str(policy.auto_shutdown).lower())
