"""
Run profiles: pool size, ramp stages per scenario, and thresholds.

A profile is a YAML file, either one of the bundled profiles in
``loadtest/profiles`` referenced by name (``load``, ``smoke``) or a path
to any other file.  Example::

    users:
      count: 100
      min_auth_success_ratio: 0.8
    scenarios:
      read_users:
        journey: read
        weight: 9
        stages:
          - {duration: 2m, target: 900}
    thresholds:
      post_list_duration: ["p(95)<400"]

Key Concepts Demonstrated:
- Declarative run configuration kept out of code
- Validation at load time so a typo fails before any load is generated
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from loadtest.config import PROFILES_DIR
from loadtest.errors import ProfileError, ThresholdError
from loadtest.thresholds import Threshold, parse_thresholds

JOURNEYS = ("read", "write", "smoke")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """
    Convert ``"2m"``, ``"1h30m"``, ``"45s"`` or a plain number to seconds.

    Raises:
        ProfileError: If the value is not a valid duration.
    """
    if isinstance(value, bool):
        raise ProfileError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ProfileError(f"Duration must not be negative: {value!r}")
        return float(value)

    text = str(value).strip()
    if not text:
        raise ProfileError("Empty duration")

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ProfileError(f"Invalid duration: {value!r}")
    return seconds


@dataclass(frozen=True)
class Stage:
    """Ramp linearly to ``target`` users over ``duration`` seconds."""

    duration: float
    target: int


@dataclass(frozen=True)
class ScenarioProfile:
    """One named scenario: which journey it runs and how its users ramp."""

    name: str
    journey: str
    stages: tuple[Stage, ...]
    weight: int = 1
    start_vus: int = 0
    start_time: float = 0.0

    @property
    def end_time(self) -> float:
        return self.start_time + sum(stage.duration for stage in self.stages)

    @property
    def peak_target(self) -> int:
        return max([self.start_vus, *(stage.target for stage in self.stages)])


@dataclass(frozen=True)
class RunProfile:
    """A complete run definition."""

    name: str
    user_count: int
    min_auth_success_ratio: float
    preauthenticate: bool
    scenarios: tuple[ScenarioProfile, ...]
    thresholds: tuple[Threshold, ...]

    @property
    def journeys(self) -> set[str]:
        return {scenario.journey for scenario in self.scenarios}

    @property
    def duration(self) -> float:
        return max((scenario.end_time for scenario in self.scenarios), default=0.0)

    def journey_weight(self, journey: str) -> int:
        """Largest weight among the scenarios running ``journey`` (0 if none)."""
        return max((s.weight for s in self.scenarios if s.journey == journey), default=0)


def _require_int(value: Any, field_name: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ProfileError(f"{field_name} must be an integer >= {minimum}, got {value!r}")
    return value


def _parse_stage(raw: Any, where: str) -> Stage:
    if not isinstance(raw, dict) or "duration" not in raw or "target" not in raw:
        raise ProfileError(f"{where}: each stage needs 'duration' and 'target'")
    return Stage(
        duration=parse_duration(raw["duration"]),
        target=_require_int(raw["target"], f"{where}.target"),
    )


def _parse_scenario(name: str, raw: Any) -> ScenarioProfile:
    if not isinstance(raw, dict):
        raise ProfileError(f"Scenario {name} must be a mapping")

    journey = raw.get("journey")
    if journey not in JOURNEYS:
        raise ProfileError(f"Scenario {name}: journey must be one of {JOURNEYS}, got {journey!r}")

    stages_raw = raw.get("stages")
    if not isinstance(stages_raw, list) or not stages_raw:
        raise ProfileError(f"Scenario {name}: at least one stage is required")

    return ScenarioProfile(
        name=name,
        journey=journey,
        stages=tuple(_parse_stage(stage, f"{name}.stages[{i}]") for i, stage in enumerate(stages_raw)),
        weight=_require_int(raw.get("weight", 1), f"{name}.weight", minimum=1),
        start_vus=_require_int(raw.get("start_vus", 0), f"{name}.start_vus"),
        start_time=parse_duration(raw.get("start_time", 0)),
    )


def parse_profile(data: Any, name: str = "custom") -> RunProfile:
    """
    Build a :class:`RunProfile` from already-loaded YAML data.

    Raises:
        ProfileError: If any part of the profile is invalid.
    """
    if not isinstance(data, dict):
        raise ProfileError(f"Profile {name} must be a mapping")

    users = data.get("users") or {}
    ratio = users.get("min_auth_success_ratio", 0.8)
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not 0 <= ratio <= 1:
        raise ProfileError(f"users.min_auth_success_ratio must be between 0 and 1, got {ratio!r}")

    scenarios_raw = data.get("scenarios")
    if not isinstance(scenarios_raw, dict) or not scenarios_raw:
        raise ProfileError(f"Profile {name} defines no scenarios")

    try:
        thresholds = parse_thresholds(data.get("thresholds"))
    except ThresholdError as exc:
        raise ProfileError(str(exc)) from exc

    return RunProfile(
        name=name,
        user_count=_require_int(users.get("count", 100), "users.count"),
        min_auth_success_ratio=float(ratio),
        preauthenticate=bool(data.get("preauthenticate", True)),
        scenarios=tuple(_parse_scenario(key, value) for key, value in scenarios_raw.items()),
        thresholds=thresholds,
    )


def resolve_profile_path(name_or_path: str | Path) -> Path:
    """Map a bundled profile name to its file; pass other paths through."""
    candidate = Path(name_or_path)
    if candidate.suffix in (".yml", ".yaml"):
        return candidate
    return PROFILES_DIR / f"{name_or_path}.yml"


def load_profile(name_or_path: str | Path) -> RunProfile:
    """
    Read and validate a run profile.

    Args:
        name_or_path: A bundled profile name (``load``, ``smoke``) or a
            path to a YAML file.

    Raises:
        ProfileError: If the file is missing or invalid.
    """
    path = resolve_profile_path(name_or_path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ProfileError(f"Profile not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ProfileError(f"Profile {path} is not valid YAML: {exc}") from exc

    return parse_profile(data, name=path.stem)
