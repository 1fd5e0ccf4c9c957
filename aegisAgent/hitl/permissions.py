"""Permission checks for tool execution."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

LOGGER = logging.getLogger("aegis.hitl.permissions")

GLOBAL_SCOPE = "global"

BLOCKED_PATH_PREFIXES = ("/etc", "/sys", "/proc")
COMMAND_INJECTION = re.compile(r"(;|&&|\|\||`|\$\()")

HIGH_RISK_COMMANDS = [
    r"\brm\s+-rf\b",
    r"\bsudo\b",
    r"\bchmod\s+777\b",
    r"\bmkfs\b",
    r"\bdd\b.*\bif=/dev/",
    r">\s*/dev/",
]
MEDIUM_RISK_COMMANDS = [
    r"\bcurl\b",
    r"\bwget\b",
    r"\bgit\s+clone\b",
    r"\bpip\s+install\b",
    r"\bnpm\s+install\b",
]


class PermissionOutcome(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    NEEDS_APPROVAL = "needs_approval"


class PermissionLevel(str, Enum):
    """Remembered grant for a tool within a scope."""
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of a permission check."""

    outcome: PermissionOutcome
    reason: str = ""
    risk_level: str = "low"  # low, medium, high, critical

    @classmethod
    def allow(cls, reason: str = "") -> "PermissionDecision":
        return cls(PermissionOutcome.ALLOWED, reason)

    @classmethod
    def deny(cls, reason: str, risk_level: str = "high") -> "PermissionDecision":
        return cls(PermissionOutcome.DENIED, reason, risk_level)

    @classmethod
    def ask(cls, reason: str, risk_level: str = "medium") -> "PermissionDecision":
        return cls(PermissionOutcome.NEEDS_APPROVAL, reason, risk_level)

    @property
    def allowed(self) -> bool:
        return self.outcome is PermissionOutcome.ALLOWED

    @property
    def denied(self) -> bool:
        return self.outcome is PermissionOutcome.DENIED

    @property
    def needs_approval(self) -> bool:
        return self.outcome is PermissionOutcome.NEEDS_APPROVAL


@dataclass
class _Grant:
    level: PermissionLevel
    expires_at: Optional[datetime] = None

    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.now(timezone.utc)


CustomChecker = Callable[[Dict[str, Any]], Optional[PermissionDecision]]


class PermissionManager:
    """Tool permission policy.

    Checks run in order, first match wins:
    0. Hard security rules (blocked system paths, shell command chaining)
    1. Remembered grants for the call's scope, then the global scope
    2. Tool custom checkers (code)
    3. Global risk patterns (YAML ``global.risk_patterns``)
    4. Per-tool rules (YAML ``tools.<name>``)
    5. Built-in defaults: reads are auto-allowed, everything else asks
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        auto_allow_read: bool = True,
        rules: Optional[Dict[str, Any]] = None,
    ):
        self.config_path = Path(config_path) if config_path else None
        self.auto_allow_read = auto_allow_read
        self.rules = rules if rules is not None else self._load_config()
        self.custom_checkers: Dict[str, CustomChecker] = {}
        self.global_patterns = self._load_global_patterns()
        self._grants: Dict[Tuple[str, str], _Grant] = {}
        self._lock = threading.Lock()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path or not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            LOGGER.warning(f"Failed to load permission rules from {self.config_path}: {e}")
            return {}

    def _load_global_patterns(self) -> Dict[str, Dict[str, Any]]:
        risk_patterns = (self.rules.get("global") or {}).get("risk_patterns") or {}
        patterns_by_level = {}
        for level, pattern_config in risk_patterns.items():
            if isinstance(pattern_config, dict):
                patterns_by_level[level] = {
                    "patterns": pattern_config.get("patterns", []),
                    "action": pattern_config.get("action", "require_approval"),
                    "reason": pattern_config.get("reason", f"Matches global {level} risk pattern"),
                }
        return patterns_by_level

    def register_checker(self, tool_name: str, checker: CustomChecker) -> None:
        """Register a custom checker; returning None falls through to the next layer."""
        self.custom_checkers[tool_name] = checker

    # ----- remembered grants -----

    def remember(
        self,
        tool_name: str,
        level: PermissionLevel,
        scope: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        key = (tool_name, scope or GLOBAL_SCOPE)
        with self._lock:
            self._grants[key] = _Grant(PermissionLevel(level), expires_at)
        LOGGER.info(f"Remembered permission {PermissionLevel(level).value} for {tool_name} (scope={key[1]})")

    def forget(self, tool_name: str, scope: Optional[str] = None) -> None:
        with self._lock:
            self._grants.pop((tool_name, scope or GLOBAL_SCOPE), None)

    def remembered(self, tool_name: str, scope: str) -> Optional[PermissionLevel]:
        with self._lock:
            for candidate in dict.fromkeys((scope, GLOBAL_SCOPE)):
                grant = self._grants.get((tool_name, candidate))
                if grant is None:
                    continue
                if grant.expired():
                    del self._grants[(tool_name, candidate)]
                    continue
                return grant.level
        return None

    @staticmethod
    def scope_from_params(params: Dict[str, Any]) -> str:
        scope = params.get("scope")
        if not isinstance(scope, str) or not scope:
            return GLOBAL_SCOPE
        return scope

    # ----- check -----

    def check(self, tool_name: str, action: str, params: Optional[Dict[str, Any]] = None) -> PermissionDecision:
        params = params or {}

        hard = self._check_security(params)
        if hard is not None:
            return hard

        level = self.remembered(tool_name, self.scope_from_params(params))
        if level is PermissionLevel.ALLOW:
            return PermissionDecision.allow("Remembered grant")
        if level is PermissionLevel.DENY:
            return PermissionDecision.deny("Remembered denial")
        if level is PermissionLevel.ASK:
            return PermissionDecision.ask("Remembered ask")

        if tool_name in self.custom_checkers:
            decision = self.custom_checkers[tool_name](params)
            if decision is not None:
                return decision

        decision = self._check_global_patterns(params)
        if decision is not None:
            return decision

        if tool_name in (self.rules.get("tools") or {}):
            decision = self._check_config_rules(tool_name, params)
            if decision is not None:
                return decision

        return self._check_builtin_rules(tool_name, action, params)

    def _check_security(self, params: Dict[str, Any]) -> Optional[PermissionDecision]:
        for key, value in params.items():
            if not isinstance(value, str):
                continue
            lowered_key = str(key).lower()
            if "path" in lowered_key and self._is_blocked_path(value):
                return PermissionDecision.deny(f"Blocked path: {value}", "critical")
            if "command" in lowered_key and COMMAND_INJECTION.search(value):
                return PermissionDecision.deny("Command chaining is not allowed", "critical")
        return None

    @staticmethod
    def _is_blocked_path(path: str) -> bool:
        normalized = path.strip().replace("\\", "/").lower()
        if ".." in normalized:
            return True
        return any(
            normalized == prefix or normalized.startswith(prefix + "/")
            for prefix in BLOCKED_PATH_PREFIXES
        )

    @staticmethod
    def _args_text(params: Dict[str, Any]) -> str:
        return " ".join(str(v) for v in params.values())

    def _check_global_patterns(self, params: Dict[str, Any]) -> Optional[PermissionDecision]:
        if not self.global_patterns:
            return None
        args_str = self._args_text(params)
        for risk_level in ("critical", "high", "medium", "low"):
            pattern_config = self.global_patterns.get(risk_level)
            if not pattern_config:
                continue
            for pattern in pattern_config["patterns"]:
                if re.search(pattern, args_str, re.IGNORECASE):
                    return self._decision_for_action(pattern_config["action"], pattern_config["reason"], risk_level)
        return None

    def _check_config_rules(self, tool_name: str, params: Dict[str, Any]) -> Optional[PermissionDecision]:
        tool_config = self.rules["tools"][tool_name] or {}
        if not tool_config.get("enabled", True):
            return None

        args_str = self._args_text(params)
        for risk_level, pattern_list in (tool_config.get("patterns") or {}).items():
            for pattern in pattern_list or []:
                if re.search(pattern, args_str, re.IGNORECASE):
                    action = (tool_config.get("actions") or {}).get(risk_level, "require_approval")
                    return self._decision_for_action(action, f"Matches {risk_level} risk pattern: {pattern}", risk_level)

        default = tool_config.get("default")
        if default:
            return self._decision_for_action(default, f"Default rule for {tool_name}", "low")
        return None

    @staticmethod
    def _decision_for_action(action: str, reason: str, risk_level: str) -> Optional[PermissionDecision]:
        if action in ("deny", "block"):
            return PermissionDecision.deny(reason, risk_level)
        if action in ("require_approval", "ask"):
            return PermissionDecision.ask(reason, risk_level)
        if action == "allow":
            return PermissionDecision.allow(reason)
        return None

    def _check_builtin_rules(self, tool_name: str, action: str, params: Dict[str, Any]) -> PermissionDecision:
        command = params.get("command")
        if isinstance(command, str):
            for pattern in HIGH_RISK_COMMANDS:
                if re.search(pattern, command, re.IGNORECASE):
                    return PermissionDecision.ask("High risk command", "high")
            for pattern in MEDIUM_RISK_COMMANDS:
                if re.search(pattern, command, re.IGNORECASE):
                    return PermissionDecision.ask("Network or install command", "medium")

        if action == "none":
            return PermissionDecision.allow("No permission required")
        if action == "read" and self.auto_allow_read:
            return PermissionDecision.allow("Read access is auto-allowed")
        return PermissionDecision.ask(f"{tool_name} requires {action} permission")
