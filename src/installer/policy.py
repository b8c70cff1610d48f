"""Install policy gate: native-package denylist and lifecycle script checks.

The gate sits in front of resolution; the resolver itself never applies
policy.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Pattern

from constants import Constants, LifecycleScripts
from errors import ConfigError, PolicyViolation
from versioning.models import ResolutionGraph

logger = logging.getLogger(__name__)


@dataclass
class PolicyConfig:
    """Policy gate settings."""

    enabled: bool = False
    denied_packages: List[str] = field(default_factory=lambda: list(Constants.NATIVE_PACKAGES))
    blocked_script_patterns: List[str] = field(default_factory=lambda: list(Constants.BLOCKED_SCRIPT_PATTERNS))
    lifecycle_scripts: List[str] = field(default_factory=lambda: [s.value for s in LifecycleScripts])

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PolicyConfig":
        """Build from a ``policy:`` config section; missing keys keep defaults.

        Raises:
            ConfigError: If a key has the wrong type.
        """
        config = cls()
        if not data:
            return config
        if not isinstance(data, dict):
            raise ConfigError("policy section must be a mapping")

        config.enabled = bool(data.get("enabled", True))
        for key in ("denied_packages", "blocked_script_patterns", "lifecycle_scripts"):
            if key in data:
                value = data[key]
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ConfigError(f"policy.{key} must be a list of strings")
                setattr(config, key, list(value))
        return config


@dataclass
class PolicyDecision:
    """Outcome of a policy evaluation."""

    decision: str
    violations: List[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.decision == "allow"

    def to_dict(self) -> Dict[str, Any]:
        return {"decision": self.decision, "violations": list(self.violations)}


class PolicyGate:
    """Evaluates manifests, requested names and resolved graphs against a PolicyConfig."""

    def __init__(self, config: Optional[PolicyConfig] = None):
        self._config = config or PolicyConfig()
        try:
            self._patterns: List[Pattern[str]] = [re.compile(p) for p in self._config.blocked_script_patterns]
        except re.error as exc:
            raise ConfigError(f"invalid blocked script pattern: {exc}") from exc

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def is_dangerous_script(self, command: str) -> bool:
        """Whether a script command matches any blocked pattern."""
        return any(p.search(command) for p in self._patterns)

    def evaluate(self, manifest: Optional[Dict[str, Any]], names: Iterable[str]) -> PolicyDecision:
        """Evaluate a root manifest and the names about to be installed."""
        if not self._config.enabled:
            return PolicyDecision(decision="allow")

        violations = []
        native = self._denied(names)
        if native:
            violations.append(f"native dependencies are not supported: {', '.join(native)}")

        scripts = (manifest or {}).get("scripts") or {}
        if isinstance(scripts, dict):
            for script in self._config.lifecycle_scripts:
                command = scripts.get(script)
                if isinstance(command, str) and self.is_dangerous_script(command):
                    violations.append(f"dangerous {script} script blocked: {command}")
                elif isinstance(command, str):
                    logger.info("%s script not executed: %s", script, command)

        return PolicyDecision(decision="deny" if violations else "allow", violations=violations)

    def evaluate_graph(self, graph: ResolutionGraph) -> PolicyDecision:
        """Evaluate transitive packages pulled in by resolution."""
        if not self._config.enabled:
            return PolicyDecision(decision="allow")
        native = self._denied(graph.names())
        if native:
            return PolicyDecision(
                decision="deny",
                violations=[f"native dependencies are not supported: {', '.join(native)}"],
            )
        return PolicyDecision(decision="allow")

    def enforce(self, decision: PolicyDecision) -> None:
        """Raise PolicyViolation for a deny decision."""
        if not decision.allowed:
            logger.warning("Install blocked by policy: %s", "; ".join(decision.violations))
            raise PolicyViolation(decision.violations)

    def _denied(self, names: Iterable[str]) -> List[str]:
        denied = set(self._config.denied_packages)
        return sorted({n for n in names if n in denied})
