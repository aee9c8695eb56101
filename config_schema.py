"""
NEA Studio Configuration Schema - Self-Validating Session Config

This module defines StudioConfig, the file-backed description of a simulation
session: policy mode, domain, stress, automation, timer periods and the
formalizer's model settings.

Consumed by:
- studio.py (CLI)
- dashboard.py (initial session state)

Design Principles:
- Self-validating: can't create an invalid config
- Self-describing: exports its JSON Schema
- Immutable: frozen after load, converted to SimConfig for a session
"""

from __future__ import annotations

import hashlib
import json
import os
import warnings
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from nea_sim.constants import (
    PolicyMode,
    Domain,
    CAPACITY_THRESHOLD,
    TELEMETRY_PERIOD_MS,
    AUTO_INJECT_PERIOD_MS,
    STRESS_INJECT_PERIOD_MS,
)
from nea_sim.types_config import SimConfig


__all__ = [
    'StudioConfig',
    'load',
    'default',
    'resolve_api_key',
    'resolve_model',
    'DEFAULT_MODEL',
]

DEFAULT_MODEL = "gemini-2.5-pro"
FORMALIZER_STYLES = ("FORMAL_LOGIC", "NARRATIVE")

# Names used by earlier dashboard builds; accepted with a warning
_LEGACY_MODE_ALIASES = {
    "NEA": "NO_ERROR",
    "NO-ERROR": "NO_ERROR",
    "REACTIVE_FAILURE": "REACTIVE",
    "ENTROPY_BOUNDED": "BOUNDED",
}


# =============================================================================
# JSON Schema Definition (Draft 2020-12)
# =============================================================================

_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "StudioConfig",
    "description": "NEA Studio session configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "version": {"type": "string", "pattern": r"^\d+\.\d+$"},
        "name": {"type": "string", "minLength": 1},
        "mode": {"enum": [m.value for m in PolicyMode]},
        "domain": {"enum": [d.value for d in Domain]},
        "stress": {"type": "boolean"},
        "auto_inject": {"type": "boolean"},
        "capacity": {"type": "integer", "minimum": 1, "maximum": 64},
        "random_seed": {"type": "integer"},
        "duration_ms": {"type": "integer", "minimum": 1},
        "telemetry_period_ms": {"type": "integer", "minimum": 50},
        "auto_inject_period_ms": {"type": "integer", "minimum": 50},
        "stress_inject_period_ms": {"type": "integer", "minimum": 50},
        "tick_period_ms": {"type": ["integer", "null"], "minimum": 50},
        "formalizer": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "model": {"type": "string", "minLength": 1},
                "style": {"enum": list(FORMALIZER_STYLES)},
            },
        },
    },
}

_VALIDATOR = Draft202012Validator(_JSON_SCHEMA)


def _compute_hash(data: Dict[str, Any]) -> str:
    """SHA3-256 of the canonical JSON form, first 16 hex chars."""
    canonical = json.dumps(data, sort_keys=True, separators=(',', ':'))
    return hashlib.sha3_256(canonical.encode()).hexdigest()[:16]


# =============================================================================
# StudioConfig Dataclass
# =============================================================================

@dataclass(frozen=True)
class StudioConfig:
    """
    Session configuration loaded from YAML/JSON.

    Attributes:
        version: Config schema version (e.g., "1.0")
        name: Scenario label carried into reports
        mode: Admission policy
        domain: Operating domain whose limits apply
        stress: Start with stress factors on
        auto_inject: Start with automated injection on
        capacity: Maximum concurrent admitted units
        random_seed: Seed for the session random source
        duration_ms: Virtual time for headless runs
        telemetry_period_ms: Chart sampling period
        auto_inject_period_ms: Injection period without stress
        stress_inject_period_ms: Injection period under stress
        tick_period_ms: Engine period override (None = mode default)
        formalizer_model: Gemini model name
        formalizer_style: FORMAL_LOGIC or NARRATIVE response schema
    """
    version: str = "1.0"
    name: str = "CUSTOM"
    mode: PolicyMode = PolicyMode.NO_ERROR
    domain: Domain = Domain.GENERAL
    stress: bool = False
    auto_inject: bool = True
    capacity: int = CAPACITY_THRESHOLD
    random_seed: int = 42
    duration_ms: int = 60_000
    telemetry_period_ms: int = TELEMETRY_PERIOD_MS
    auto_inject_period_ms: int = AUTO_INJECT_PERIOD_MS
    stress_inject_period_ms: int = STRESS_INJECT_PERIOD_MS
    tick_period_ms: Optional[int] = None
    formalizer_model: str = DEFAULT_MODEL
    formalizer_style: str = "FORMAL_LOGIC"

    @property
    def schema(self) -> Dict[str, Any]:
        """JSON Schema dict for external validation."""
        return dict(_JSON_SCHEMA)

    @property
    def config_hash(self) -> str:
        return _compute_hash(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['mode'] = self.mode.value
        data['domain'] = self.domain.value
        data['formalizer'] = {
            'model': data.pop('formalizer_model'),
            'style': data.pop('formalizer_style'),
        }
        return data

    def to_json(self, pretty: bool = False) -> str:
        if pretty:
            return json.dumps(self.to_dict(), indent=2, sort_keys=True)
        return json.dumps(self.to_dict(), separators=(',', ':'))

    def save(self, path: str) -> None:
        """
        Write config to file.

        Args:
            path: File path to write to (.json or .yaml)
        """
        path_obj = Path(path)
        data = self.to_dict()
        if path_obj.suffix in ('.yaml', '.yml'):
            content = yaml.safe_dump(data, default_flow_style=False, sort_keys=True)
        else:
            content = json.dumps(data, indent=2, sort_keys=True)
        path_obj.write_text(content)

    def to_sim_config(self) -> SimConfig:
        """Engine-facing config for one session."""
        return SimConfig(
            mode=self.mode,
            domain=self.domain,
            stress=self.stress,
            auto_inject=self.auto_inject,
            capacity=self.capacity,
            random_seed=self.random_seed,
            telemetry_period_ms=self.telemetry_period_ms,
            auto_inject_period_ms=self.auto_inject_period_ms,
            stress_inject_period_ms=self.stress_inject_period_ms,
            tick_period_override_ms=self.tick_period_ms,
            scenario_name=self.name,
        )

    def with_overrides(self, **changes: Any) -> StudioConfig:
        """New config with some fields replaced (None values ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StudioConfig:
        """
        Create from dictionary.

        Raises:
            ValueError: If the data does not match the schema
        """
        return _create_config(data)


# =============================================================================
# Module-Level Functions
# =============================================================================

def load(path: str) -> StudioConfig:
    """
    Load config from JSON/YAML file.

    Args:
        path: Path to config file

    Returns:
        Validated, frozen StudioConfig instance

    Raises:
        FileNotFoundError: If path doesn't exist
        ValueError: If the file is not a mapping or fails validation
    """
    path_obj = Path(path)

    if not path_obj.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path_obj.read_text()

    try:
        if path_obj.suffix in ('.yaml', '.yml'):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Config parse failed: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping, got {type(data).__name__}")

    return _create_config(data)


def default() -> StudioConfig:
    """Config with every default."""
    return StudioConfig()


def resolve_api_key(environ: Optional[Dict[str, str]] = None) -> Optional[str]:
    """GEMINI_API_KEY, falling back to API_KEY."""
    env = os.environ if environ is None else environ
    return env.get("GEMINI_API_KEY") or env.get("API_KEY") or None


def resolve_model(config: Optional[StudioConfig] = None,
                  environ: Optional[Dict[str, str]] = None) -> str:
    """NEA_GEMINI_MODEL wins over the config file."""
    env = os.environ if environ is None else environ
    override = env.get("NEA_GEMINI_MODEL")
    if override:
        return override
    return config.formalizer_model if config else DEFAULT_MODEL


# =============================================================================
# Internal Validation Functions
# =============================================================================

def _normalize(data: Dict[str, Any], warns: List[str]) -> Dict[str, Any]:
    """Map legacy mode names to current ones."""
    normalized = dict(data)
    mode = normalized.get('mode')
    if isinstance(mode, str) and mode in _LEGACY_MODE_ALIASES:
        normalized['mode'] = _LEGACY_MODE_ALIASES[mode]
        warns.append(f"mode '{mode}' is deprecated, use '{normalized['mode']}'")
    return normalized


def _validate(data: Dict[str, Any]) -> List[str]:
    """Schema errors as readable strings, empty when valid."""
    errors = []
    for err in sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in err.path) or "<root>"
        errors.append(f"{location}: {err.message}")
    return errors


def _create_config(data: Dict[str, Any]) -> StudioConfig:
    """
    Internal factory for creating StudioConfig from data.

    Handles alias normalization, validation and warnings.
    """
    all_warnings: List[str] = []
    data = _normalize(data, all_warnings)

    errors = _validate(data)
    if errors:
        raise ValueError("Config validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    for w in all_warnings:
        warnings.warn(f"StudioConfig: {w}", UserWarning, stacklevel=3)

    formalizer = data.get('formalizer', {})
    fields = {k: v for k, v in data.items() if k != 'formalizer'}
    if 'mode' in fields:
        fields['mode'] = PolicyMode(fields['mode'])
    if 'domain' in fields:
        fields['domain'] = Domain(fields['domain'])
    if 'model' in formalizer:
        fields['formalizer_model'] = formalizer['model']
    if 'style' in formalizer:
        fields['formalizer_style'] = formalizer['style']

    return StudioConfig(**fields)
