"""Tests for the tool permission policy with global risk patterns and per-tool rules."""

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from aegisAgent.hitl.permissions import (
    GLOBAL_SCOPE,
    PermissionDecision,
    PermissionLevel,
    PermissionManager,
    PermissionOutcome,
)


@pytest.fixture
def rules():
    return {
        "global": {
            "risk_patterns": {
                "critical": {
                    "patterns": [r"password\s*[=:]"],
                    "action": "require_approval",
                    "reason": "Arguments contain credentials",
                },
                "high": {
                    "patterns": [r"DROP\s+(TABLE|DATABASE)"],
                    "action": "deny",
                    "reason": "Destructive database operation",
                },
            },
        },
        "tools": {
            "send_email": {
                "enabled": True,
                "patterns": {"high": [r"@competitor\.com"]},
                "actions": {"high": "deny"},
                "default": "allow",
            },
            "disabled_rules": {
                "enabled": False,
                "default": "deny",
            },
        },
    }


@pytest.fixture
def manager(rules):
    return PermissionManager(rules=rules)


class TestHardSecurityRules:

    @pytest.mark.parametrize("path", ["/etc/passwd", "/proc/self/environ", "../../secret", "/SYS/kernel"])
    def test_blocked_paths(self, manager, path):
        decision = manager.check("read_file", "read", {"file_path": path})

        assert decision.denied
        assert decision.risk_level == "critical"

    @pytest.mark.parametrize("command", ["ls; rm -rf /", "echo hi && reboot", "cat $(whoami)", "a || b"])
    def test_command_chaining(self, manager, command):
        assert manager.check("bash", "execute", {"command": command}).denied

    def test_security_beats_remembered_grant(self, manager):
        manager.remember("read_file", PermissionLevel.ALLOW)

        assert manager.check("read_file", "read", {"path": "/etc/shadow"}).denied


class TestGlobalRiskPatterns:

    def test_credentials_need_approval(self, manager):
        decision = manager.check("write_file", "write", {"content": "password = hunter2"})

        assert decision.outcome is PermissionOutcome.NEEDS_APPROVAL
        assert decision.risk_level == "critical"
        assert decision.reason == "Arguments contain credentials"

    def test_deny_action(self, manager):
        decision = manager.check("query", "read", {"sql": "drop table users"})

        assert decision.denied
        assert decision.risk_level == "high"


class TestToolRules:

    def test_pattern_match_uses_configured_action(self, manager):
        decision = manager.check("send_email", "write", {"to": "bob@competitor.com"})

        assert decision.denied

    def test_default_rule(self, manager):
        assert manager.check("send_email", "write", {"to": "alice@example.com"}).allowed

    def test_disabled_rules_fall_through_to_builtin(self, manager):
        decision = manager.check("disabled_rules", "write", {})

        assert decision.needs_approval


class TestBuiltinRules:

    def test_reads_auto_allowed(self):
        assert PermissionManager(rules={}).check("read_file", "read", {"file_path": "notes.txt"}).allowed

    def test_reads_ask_when_auto_allow_off(self):
        manager = PermissionManager(rules={}, auto_allow_read=False)

        assert manager.check("read_file", "read", {}).needs_approval

    def test_no_permission_required(self):
        assert PermissionManager(rules={}).check("now", "none", {}).allowed

    def test_writes_ask(self):
        decision = PermissionManager(rules={}).check("write_file", "write", {"file_path": "out.txt"})

        assert decision.needs_approval
        assert "write" in decision.reason

    @pytest.mark.parametrize("command,risk", [
        ("sudo apt update", "high"),
        ("curl https://example.com", "medium"),
        ("pip install requests", "medium"),
    ])
    def test_risky_commands_ask(self, command, risk):
        decision = PermissionManager(rules={}).check("bash", "execute", {"command": command})

        assert decision.needs_approval
        assert decision.risk_level == risk


class TestRememberedGrants:

    def test_scope_then_global(self, manager):
        manager.remember("write_file", PermissionLevel.ALLOW, scope="conv-1")

        assert manager.check("write_file", "write", {"scope": "conv-1"}).allowed
        assert manager.check("write_file", "write", {"scope": "conv-2"}).needs_approval

        manager.remember("write_file", PermissionLevel.DENY)
        assert manager.check("write_file", "write", {"scope": "conv-2"}).denied

    def test_expired_grant_is_ignored(self, manager):
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        manager.remember("write_file", PermissionLevel.ALLOW, expires_at=past)

        assert manager.remembered("write_file", GLOBAL_SCOPE) is None

    def test_forget(self, manager):
        manager.remember("write_file", PermissionLevel.ALLOW)
        manager.forget("write_file")

        assert manager.check("write_file", "write", {}).needs_approval


class TestCustomCheckers:

    def test_checker_decides(self, manager):
        manager.register_checker("deploy", lambda params: PermissionDecision.deny("Frozen", "high"))

        assert manager.check("deploy", "execute", {}).denied

    def test_checker_none_falls_through(self, manager):
        manager.register_checker("read_file", lambda params: None)

        assert manager.check("read_file", "read", {}).allowed


class TestConfigFile:

    def test_loads_yaml(self, tmp_path, rules):
        path = tmp_path / "permission_rules.yaml"
        path.write_text(yaml.safe_dump(rules), encoding="utf-8")

        manager = PermissionManager(config_path=path)

        assert manager.check("send_email", "write", {"to": "x@competitor.com"}).denied

    def test_missing_file_means_builtin_rules(self, tmp_path):
        manager = PermissionManager(config_path=tmp_path / "missing.yaml")

        assert manager.rules == {}
        assert manager.check("read_file", "read", {}).allowed

    def test_packaged_rules(self):
        from aegisAgent.runtime.app import DEFAULT_PERMISSION_RULES

        manager = PermissionManager(config_path=DEFAULT_PERMISSION_RULES)

        assert manager.check("delegate_task", "write", {"title": "Weekly report"}).allowed
        assert manager.check("delegate_task", "write", {"title": "URGENT fix"}).needs_approval
        assert manager.check("now", "none", {"note": "api_key=abc"}).needs_approval
