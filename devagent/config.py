"""
Configuration: endpoint, loop limits and guard ceilings.

Loading priority:
  1. Project dir .agent.conf.yml
  2. Global ~/.devagent/config.yml

Environment variables (and .env files) override whatever the YAML says.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv

CONFIG_DIR = Path.home() / ".devagent"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".agent.conf.yml"

DEFAULT_BASE_URL = "http://localhost:1234"
DEFAULT_MODEL = "openai/gpt-oss-20b"


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> tuple[bool, float, str]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, 0.0, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val:g} and {max_val:g}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_url(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip().rstrip("/")
    if not text.startswith(("http://", "https://")):
        return False, "", "Must start with http:// or https://"
    return True, text, ""


def _validate_filename(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip()
    if not text or text.startswith("/") or ".." in Path(text).parts:
        return False, "", "Must be a relative path inside the workspace"
    return True, text, ""


@dataclass
class GuardLimits:
    """Trigger thresholds and ceilings for the guard bank."""
    duplicate_threshold: int = 3
    duplicate: int = 4
    scan_threshold: int = 3
    scan_after_step: int = 5
    chain_error: int = 3
    premature_finish: int = 3
    premature_window: int = 10
    review_write: int = 2
    report_missing: int = 3
    verdict_missing: int = 3
    review_request: int = 3
    follow_up: int = 3

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardLimits":
        limits = cls()
        for f in fields(cls):
            raw = data.get(f.name.replace("_", "-"), data.get(f.name))
            if raw is None:
                continue
            setattr(limits, f.name,
                    Config._coerce_positive_int(raw, default=getattr(limits, f.name)))
        return limits

    def to_dict(self) -> Dict[str, int]:
        return {f.name.replace("_", "-"): getattr(self, f.name) for f in fields(self)}


def _guard_field(name: str, description: str, default: int,
                 max_val: int = 50) -> ConfigFieldSpec:
    key = "guards." + name.replace("_", "-")
    return ConfigFieldSpec(
        key=key,
        field_name="guards." + name,
        description=description,
        value_type="int",
        default=default,
        validator=lambda v: _validate_int_range(v, 1, max_val),
    )


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "base-url": ConfigFieldSpec(
        key="base-url",
        field_name="base_url",
        description="Base URL of the OpenAI-compatible chat endpoint",
        value_type="str",
        default=DEFAULT_BASE_URL,
        validator=_validate_url,
    ),
    "model": ConfigFieldSpec(
        key="model",
        field_name="model",
        description="Model identifier sent with every completion request",
        value_type="str",
        default=DEFAULT_MODEL,
    ),
    "max-steps": ConfigFieldSpec(
        key="max-steps",
        field_name="max_steps",
        description="Maximum agent steps per run",
        value_type="int",
        default=50,
        validator=lambda v: _validate_int_range(v, 1, 500),
    ),
    "request-timeout": ConfigFieldSpec(
        key="request-timeout",
        field_name="request_timeout",
        description="Absolute time limit for one model turn, in seconds",
        value_type="float",
        default=120.0,
        validator=lambda v: _validate_float_range(v, 1, 3600),
    ),
    "stall-timeout": ConfigFieldSpec(
        key="stall-timeout",
        field_name="stall_timeout",
        description="Seconds without stream data before the turn is abandoned",
        value_type="float",
        default=30.0,
        validator=lambda v: _validate_float_range(v, 1, 600),
    ),
    "connect-timeout": ConfigFieldSpec(
        key="connect-timeout",
        field_name="connect_timeout",
        description="Connection timeout for the model endpoint, in seconds",
        value_type="float",
        default=10.0,
        validator=lambda v: _validate_float_range(v, 1, 120),
    ),
    "max-history-turns": ConfigFieldSpec(
        key="max-history-turns",
        field_name="max_history_turns",
        description="History length that triggers pruning",
        value_type="int",
        default=50,
        validator=lambda v: _validate_int_range(v, 10, 1000),
    ),
    "history-window": ConfigFieldSpec(
        key="history-window",
        field_name="history_window",
        description="Recent turns kept verbatim when pruning",
        value_type="int",
        default=30,
        validator=lambda v: _validate_int_range(v, 4, 1000),
    ),
    "max-result-chars": ConfigFieldSpec(
        key="max-result-chars",
        field_name="max_result_chars",
        description="Truncation limit for raw tool payloads fed back to the model",
        value_type="int",
        default=10000,
        validator=lambda v: _validate_int_range(v, 500, 200000),
    ),
    "max-file-feedback-chars": ConfigFieldSpec(
        key="max-file-feedback-chars",
        field_name="max_file_feedback_chars",
        description="File content shown after a failed replace_in_file",
        value_type="int",
        default=6000,
        validator=lambda v: _validate_int_range(v, 200, 100000),
    ),
    "report-file": ConfigFieldSpec(
        key="report-file",
        field_name="report_file",
        description="Review report written in review mode",
        value_type="str",
        default="REVIEW_REPORT.md",
        validator=_validate_filename,
    ),
    "plan-file": ConfigFieldSpec(
        key="plan-file",
        field_name="plan_file",
        description="Implementation plan file",
        value_type="str",
        default="implementation.md",
        validator=_validate_filename,
    ),
    "handoff-log": ConfigFieldSpec(
        key="handoff-log",
        field_name="handoff_log",
        description="Append-only hand-off log between generate and review runs",
        value_type="str",
        default=".devagent/handoff.log",
        validator=_validate_filename,
    ),
    "require-review-request": ConfigFieldSpec(
        key="require-review-request",
        field_name="require_review_request",
        description="Require request_review before finishing after code changes",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
    "host": ConfigFieldSpec(
        key="host",
        field_name="host",
        description="Bind address for `devagent serve`",
        value_type="str",
        default="127.0.0.1",
    ),
    "port": ConfigFieldSpec(
        key="port",
        field_name="port",
        description="Port for `devagent serve`",
        value_type="int",
        default=3009,
        validator=lambda v: _validate_int_range(v, 1, 65535),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable verbose debug output",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
    "guards.duplicate": _guard_field(
        "duplicate", "Identical consecutive actions tolerated before stopping", 4),
    "guards.chain-error": _guard_field(
        "chain_error", "Nudges allowed for unparseable replies", 3),
    "guards.premature-finish": _guard_field(
        "premature_finish", "Nudges allowed for finishing before any change", 3),
    "guards.premature-window": _guard_field(
        "premature_window", "Steps during which an early finish is questioned", 10, 500),
    "guards.review-write": _guard_field(
        "review_write", "Write attempts tolerated in review mode", 2),
    "guards.report-missing": _guard_field(
        "report_missing", "Nudges allowed for finishing a review without a report", 3),
    "guards.verdict-missing": _guard_field(
        "verdict_missing", "Nudges allowed for finishing a review without a verdict", 3),
    "guards.review-request": _guard_field(
        "review_request", "Nudges allowed for finishing without requesting review", 3),
    "guards.follow-up": _guard_field(
        "follow_up", "Nudges allowed for ignoring a rejected review", 3),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]

    if spec.validator:
        return spec.validator(value)

    # No validator: just coerce type
    if spec.value_type == "str":
        return True, str(value), ""
    elif spec.value_type == "int":
        try:
            return True, int(value), ""
        except (TypeError, ValueError):
            return False, spec.default, "Must be an integer"
    elif spec.value_type == "bool":
        return _validate_bool(value)

    return True, value, ""


@dataclass
class Config:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_steps: int = 50
    request_timeout: float = 120.0
    stall_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_history_turns: int = 50
    history_window: int = 30
    max_result_chars: int = 10000
    max_file_feedback_chars: int = 6000
    report_file: str = "REVIEW_REPORT.md"
    plan_file: str = "implementation.md"
    handoff_log: str = ".devagent/handoff.log"
    require_review_request: bool = False
    host: str = "127.0.0.1"
    port: int = 3009
    verbose: bool = False
    log_file: Optional[str] = None
    error_log: Optional[str] = None
    workspace_dir: Optional[str] = None
    guards: GuardLimits = field(default_factory=GuardLimits)
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            return
        if not isinstance(data, dict):
            return

        for key, spec in CONFIG_FIELDS.items():
            if key.startswith("guards."):
                continue
            if key not in data:
                continue
            ok, value, _ = validate_config_value(key, data[key])
            if ok:
                setattr(self, spec.field_name, value)

        self.log_file = data.get("log-file", self.log_file)
        self.error_log = data.get("error-log", self.error_log)
        self.workspace_dir = data.get("workspace-dir", self.workspace_dir)

        guards = data.get("guards")
        if isinstance(guards, dict):
            self.guards = GuardLimits.from_dict(guards)

    def _apply_env(self):
        env_map = {
            "LM_STUDIO_BASE_URL": ("base_url", lambda v: v.strip().rstrip("/")),
            "LM_STUDIO_MODEL": ("model", str),
            "AGENT_MAX_STEPS": (
                "max_steps",
                lambda v: self._coerce_positive_int(v, default=self.max_steps, max_value=500),
            ),
            "AGENT_VERBOSE": ("verbose", lambda v: self._coerce_bool(v, self.verbose)),
            "WORKSPACE_DIR": ("workspace_dir", str),
            "PORT": ("port", lambda v: self._coerce_positive_int(v, default=self.port, max_value=65535)),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                try:
                    setattr(self, attr, conv(val))
                except (ValueError, TypeError):
                    pass

    @property
    def workspace_root(self) -> Path:
        """Directory the agent's tools are confined to."""
        base = Path(self.project_root or ".")
        if self.workspace_dir:
            ws = Path(self.workspace_dir).expanduser()
            return (ws if ws.is_absolute() else base / ws).resolve()
        return base.resolve()

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)

        data: Dict[str, Any] = {}
        for key, spec in CONFIG_FIELDS.items():
            if key.startswith("guards."):
                continue
            data[key] = getattr(self, spec.field_name)
        if self.log_file:
            data["log-file"] = self.log_file
        if self.error_log:
            data["error-log"] = self.error_log
        if self.workspace_dir:
            data["workspace-dir"] = self.workspace_dir
        data["guards"] = self.guards.to_dict()

        with open(target, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def summary(self) -> dict:
        return {
            "Endpoint": self.base_url,
            "Model": self.model,
            "Max steps": self.max_steps,
            "Timeouts": (f"connect {self.connect_timeout:g}s · stall {self.stall_timeout:g}s"
                         f" · turn {self.request_timeout:g}s"),
            "History": f"prune above {self.max_history_turns} turns, keep last {self.history_window}",
            "Review report": self.report_file,
            "Plan file": self.plan_file,
            "Review request required": "ON" if self.require_review_request else "OFF",
            "Workspace": str(self.workspace_root),
            "Config": self._config_source or "(defaults)",
        }

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    def _resolve_attr(self, field_name: str):
        """Return (owner, attribute) for a possibly dotted field name."""
        owner: Any = self
        parts = field_name.split(".")
        for part in parts[:-1]:
            owner = getattr(owner, part)
        return owner, parts[-1]

    def get_config_value(self, key: str) -> Any:
        """Get configuration value by key."""
        if key not in CONFIG_FIELDS:
            return None
        spec = CONFIG_FIELDS[key]
        owner, attr = self._resolve_attr(spec.field_name)
        return getattr(owner, attr, spec.default)

    def set_config_value(self, key: str, value: Any, persist: bool = True) -> tuple[bool, str]:
        """
        Set configuration value with validation.

        Returns:
            (success, error_message)
        """
        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            return False, error_msg

        spec = CONFIG_FIELDS[key]
        owner, attr = self._resolve_attr(spec.field_name)
        setattr(owner, attr, coerced_value)
        if persist:
            self.save()
        return True, ""

    def reset_config_value(self, key: str, persist: bool = True) -> tuple[bool, str]:
        """Reset configuration value to default."""
        if key not in CONFIG_FIELDS:
            return False, f"Unknown configuration key: {key}"

        spec = CONFIG_FIELDS[key]
        owner, attr = self._resolve_attr(spec.field_name)
        setattr(owner, attr, spec.default)
        if persist:
            self.save()
        return True, ""
