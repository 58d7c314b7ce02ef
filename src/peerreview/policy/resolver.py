"""Policy resolver — loads assignment_policy.json and exposes every
runtime decision as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

POLICY_FILE = "assignment_policy.json"


class PolicyResolver:
    """Loads and resolves peer review assignment policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        quota = resolver.resolve_quota(None)
        check = resolver.validate_capacity()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / POLICY_FILE))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError(f"{POLICY_FILE} missing version")
        if "assignment" not in self._policy:
            raise ValueError(f"{POLICY_FILE} missing assignment section")
        low, high = self.reviews_per_group_bounds()
        if low < 1 or high < low:
            raise ValueError(
                f"Invalid reviews-per-group bounds: [{low}, {high}]"
            )
        default = self.default_reviews_per_group()
        if not (low <= default <= high):
            raise ValueError(
                f"Default reviews per group {default} outside [{low}, {high}]"
            )

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def default_reviews_per_group(self) -> int:
        """Quota used when the caller does not ask for one."""
        return self._policy["assignment"]["default_reviews_per_group"]

    def reviews_per_group_bounds(self) -> tuple[int, int]:
        """Return (min, max) allowed quota."""
        a = self._policy["assignment"]
        return a["min_reviews_per_group"], a["max_reviews_per_group"]

    def resolve_quota(self, requested: Optional[int]) -> int:
        """Return the quota to run with.

        Raises ValueError if the requested quota is outside policy bounds.
        """
        if requested is None:
            return self.default_reviews_per_group()
        low, high = self.reviews_per_group_bounds()
        if not (low <= requested <= high):
            raise ValueError(
                f"Reviews per group must be in [{low}, {high}], got {requested}"
            )
        return requested

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    def validate_capacity(self) -> bool:
        """Whether runs check pool supply against demand up front."""
        return self._policy["assignment"]["validate_capacity"]


def _load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file or raise with clear path."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
