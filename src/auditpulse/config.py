"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     Constants, scoring policy and the optional YAML policy loader.
--------------------------------------------------------------------------------
"""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import PolicyError
from .models import Severity

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# CONSTANTS & CONFIG
# ═══════════════════════════════════════════════════════════════
@dataclass
class Config:
    VERSION: str = "1.0.0"
    TOOL_NAME: str = "Smart Contract Auditor"
    CONFIG_FILE: str = ".auditpulse.yaml"
    CONFIG_ENV: str = "AUDITPULSE_CONFIG"
    EXPORT_PATTERN: str = "audit-report-{contract_hash}-{epoch_ms}.json"
    TITLE_MAX_LENGTH: int = 80
    PREVIEW_LIMIT: int = 1000
    # Dashboard bands: score >= GOOD is green, >= FAIR is yellow, else red
    SCORE_BAND_GOOD: int = 80
    SCORE_BAND_FAIR: int = 60
    EMOJIS: Dict[str, str] = None

    def __post_init__(self):
        self.EMOJIS = {
            "critical": "🔴", "high": "🟠", "medium": "🟡",
            "low": "🔵", "unknown": "⚪",
            "scan": "🔍 ", "export": "💾 ", "policy": "📋 ",
        }

CONFIG = Config()


# Penalty per issue. Must stay strictly decreasing from critical to unknown.
DEFAULT_WEIGHTS: Dict[Severity, int] = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
    Severity.UNKNOWN: 1,
}

# Checked in this order; the first tier with a whole-word match wins.
DEFAULT_KEYWORDS: Dict[Severity, Tuple[str, ...]] = {
    Severity.CRITICAL: (
        "critical", "reentrancy", "re-entrancy", "selfdestruct", "self-destruct",
        "drain", "drained", "steal", "stolen", "arbitrary delegatecall",
        "unprotected upgrade", "unprotected initializer",
    ),
    Severity.HIGH: (
        "high", "severe", "overflow", "underflow", "access control",
        "unauthorized", "front-run", "front-running", "frontrun",
        "oracle manipulation", "tx.origin", "unchecked call", "denial of service",
    ),
    Severity.MEDIUM: (
        "medium", "moderate", "timestamp dependence", "block.timestamp",
        "centralization", "unchecked return", "race condition", "weak randomness",
    ),
    Severity.LOW: (
        "low", "minor", "informational", "info", "gas", "optimization",
        "unused", "naming", "floating pragma", "code style",
    ),
}


@dataclass(frozen=True)
class ScoringPolicy:
    """Penalty weights and keyword table shared by the classifier and aggregator."""
    weights: Mapping[Severity, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    keywords: Mapping[Severity, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_KEYWORDS))

    def __post_init__(self):
        missing = [t.value for t in Severity.ordered() if t not in self.weights]
        if missing:
            raise PolicyError(f"Missing weights for: {', '.join(missing)}")

        previous = None
        for tier in Severity.ordered():
            weight = self.weights[tier]
            if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
                raise PolicyError(f"Weight for '{tier.value}' must be a non-negative integer")
            if previous is not None and weight >= previous:
                raise PolicyError("Weights must be strictly decreasing from critical to unknown")
            previous = weight

        if Severity.UNKNOWN in self.keywords:
            raise PolicyError("'unknown' is the fallback tier and takes no keywords")

    def keyword_table(self) -> Tuple[Tuple[Severity, Tuple[str, ...]], ...]:
        """Keyword sets in priority order (critical first)."""
        return tuple(
            (tier, tuple(self.keywords.get(tier, ())))
            for tier in Severity.ordered() if tier is not Severity.UNKNOWN
        )

DEFAULT_POLICY = ScoringPolicy()


def _parse_tier(name) -> Severity:
    try:
        return Severity(str(name).strip().lower())
    except ValueError:
        raise PolicyError(f"Unknown severity tier '{name}' in policy file") from None


def resolve_policy_path(explicit: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """--config wins, then $AUDITPULSE_CONFIG, then ./.auditpulse.yaml if present."""
    if explicit:
        return Path(explicit)
    env_path = os.getenv(CONFIG.CONFIG_ENV)
    if env_path:
        return Path(env_path)
    local = Path.cwd() / CONFIG.CONFIG_FILE
    if local.is_file():
        return local
    return None


def load_policy(path: Optional[Union[str, Path]] = None) -> ScoringPolicy:
    """
    Load a YAML policy file and merge it over the defaults.

        weights:
          critical: 30
        keywords:
          high: [overflow, flash loan]

    Tiers not mentioned keep their default weight and keywords.
    """
    policy_path = resolve_policy_path(path)
    if policy_path is None:
        return DEFAULT_POLICY

    yaml = YAML(typ='safe', pure=True)
    try:
        with open(policy_path, 'r', encoding='utf-8') as f:
            data = yaml.load(f) or {}
    except OSError as e:
        raise PolicyError(f"Cannot read policy file {policy_path}: {e}") from e
    except YAMLError as e:
        raise PolicyError(f"Policy file {policy_path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise PolicyError(f"Policy file {policy_path} must contain a mapping")

    for section in ('weights', 'keywords'):
        if not isinstance(data.get(section) or {}, dict):
            raise PolicyError(f"'{section}' in {policy_path} must be a mapping of tier names")

    weights = dict(DEFAULT_WEIGHTS)
    for name, value in (data.get('weights') or {}).items():
        weights[_parse_tier(name)] = value

    keywords = dict(DEFAULT_KEYWORDS)
    for name, words in (data.get('keywords') or {}).items():
        tier = _parse_tier(name)
        if isinstance(words, str):
            words = [words]
        if not isinstance(words, list):
            raise PolicyError(f"Keywords for '{tier.value}' must be a list")
        keywords[tier] = tuple(str(w).strip().lower() for w in words if str(w).strip())

    logger.debug(f"Loaded scoring policy from {policy_path}")
    return ScoringPolicy(weights=weights, keywords=keywords)
