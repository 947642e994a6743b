"""Validation of the tasks file.

The validator never raises on bad input. It collects every problem it can
find into a ValidationResult and builds a Configuration holding only the
tasks that passed their individual checks.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import httpx

from cronward.scheduler.cron_scheduler import (
    build_cron_trigger,
    compute_fire_times,
    resolve_timezone,
)
from cronward.scheduler.models import (
    SYSTEM_TIMEZONE,
    Configuration,
    Task,
    TaskType,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
    is_safe_task_id,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
LOG_LEVELS = ("debug", "info", "warn", "error")
TIMEZONE_EXAMPLES = ["system", "UTC", "America/New_York", "Europe/London", "Asia/Tokyo"]

MIN_INTERVAL_SECONDS = 60
CONTEXT_LINES = 2


def _error_context(raw_text: str, line: int) -> str:
    """Lines around a syntax error, each prefixed with its number."""
    lines = raw_text.splitlines()
    start = max(1, line - CONTEXT_LINES)
    end = min(len(lines), line + CONTEXT_LINES)
    context = []
    for number in range(start, end + 1):
        marker = ">" if number == line else " "
        context.append(f"{marker} {number:4d} | {lines[number - 1]}")
    return "\n".join(context)


class ConfigValidator:
    """Checks a tasks file and extracts its valid tasks.

    Example:
        result = ConfigValidator().validate(path.read_text())
        if result.critical:
            ...
        scheduler.rebuild(result.configuration.tasks)
    """

    def __init__(self, check_frequency: bool = True) -> None:
        """Initialize the validator.

        Args:
            check_frequency: Warn about schedules firing more than once a minute
        """
        self._check_frequency = check_frequency

    def validate(self, raw_text: str, parsed: Any = None) -> ValidationResult:
        """Validate tasks file content.

        Args:
            raw_text: File content, used for syntax error positions
            parsed: Already-decoded JSON, if the caller parsed it

        Returns:
            ValidationResult; ``configuration`` is None when a critical
            error makes the file unusable
        """
        result = ValidationResult()

        if parsed is None:
            try:
                parsed = json.loads(raw_text)
            except json.JSONDecodeError as e:
                result.errors.append(self._syntax_error(raw_text, e))
                return result

        if not isinstance(parsed, dict):
            result.errors.append(
                ValidationError(
                    ValidationErrorType.STRUCTURE,
                    "root",
                    "Configuration must be a JSON object",
                    {"actual": type(parsed).__name__},
                )
            )
            return result

        tasks_data = parsed.get("tasks")
        if not isinstance(tasks_data, list):
            result.errors.append(
                ValidationError(
                    ValidationErrorType.STRUCTURE,
                    "tasks",
                    "'tasks' must be an array" if "tasks" in parsed else "Missing 'tasks' array",
                    {"actual": type(tasks_data).__name__ if "tasks" in parsed else None},
                )
            )
            return result

        timezone_name = self._check_timezone(parsed, result)
        log_level = self._check_log_level(parsed, result)

        tasks: List[Task] = []
        seen: Dict[str, int] = {}
        for index, entry in enumerate(tasks_data):
            task = self._check_task(index, entry, timezone_name, result)
            if task is None:
                continue

            if task.id in seen:
                result.errors.append(
                    ValidationError(
                        ValidationErrorType.DUPLICATE_ID,
                        f"tasks[{index}].id",
                        f"Duplicate task id '{task.id}'",
                        {"id": task.id, "firstIndex": seen[task.id], "duplicateIndex": index},
                    )
                )
                continue

            seen[task.id] = index
            tasks.append(task)

        result.configuration = Configuration(
            tasks=tasks,
            timezone=timezone_name,
            log_level=log_level,
        )

        if result.errors:
            logger.warning(f"Configuration has {len(result.errors)} validation error(s)")
        return result

    def _syntax_error(self, raw_text: str, error: json.JSONDecodeError) -> ValidationError:
        return ValidationError(
            ValidationErrorType.JSON_SYNTAX,
            "root",
            f"Invalid JSON: {error.msg}",
            {
                "line": error.lineno,
                "column": error.colno,
                "position": error.pos,
                "context": _error_context(raw_text, error.lineno),
            },
        )

    def _check_timezone(self, parsed: Dict[str, Any], result: ValidationResult) -> str:
        if "timezone" not in parsed:
            return SYSTEM_TIMEZONE

        value = parsed["timezone"]
        if not isinstance(value, str) or not value:
            result.errors.append(
                ValidationError(
                    ValidationErrorType.TIMEZONE,
                    "timezone",
                    "Timezone must be a non-empty string",
                    {"value": value, "examples": TIMEZONE_EXAMPLES},
                )
            )
            return SYSTEM_TIMEZONE

        if value == SYSTEM_TIMEZONE:
            return value

        try:
            resolve_timezone(value)
        except ValueError:
            result.errors.append(
                ValidationError(
                    ValidationErrorType.TIMEZONE,
                    "timezone",
                    f"Unknown timezone '{value}'",
                    {"value": value, "examples": TIMEZONE_EXAMPLES},
                )
            )
            return SYSTEM_TIMEZONE

        return value

    def _check_log_level(self, parsed: Dict[str, Any], result: ValidationResult) -> str:
        value = parsed.get("logLevel", "info")
        if value not in LOG_LEVELS:
            result.errors.append(
                ValidationError(
                    ValidationErrorType.INVALID_VALUE,
                    "logLevel",
                    f"Invalid log level {value!r}",
                    {"value": value, "allowed": list(LOG_LEVELS)},
                )
            )
            return "info"
        return value

    def _check_task(
        self,
        index: int,
        entry: Any,
        timezone_name: str,
        result: ValidationResult,
    ) -> Optional[Task]:
        """Validate one task entry; returns the Task only if it has no errors."""
        prefix = f"tasks[{index}]"
        errors: List[ValidationError] = []

        if not isinstance(entry, dict):
            result.errors.append(
                ValidationError(
                    ValidationErrorType.STRUCTURE,
                    prefix,
                    "Task must be an object",
                    {"actual": type(entry).__name__},
                )
            )
            return None

        for name in ("id", "schedule", "type"):
            value = entry.get(name)
            if value is None or value == "":
                errors.append(
                    ValidationError(
                        ValidationErrorType.REQUIRED_FIELD,
                        f"{prefix}.{name}",
                        f"Missing required field '{name}'",
                    )
                )
            elif not isinstance(value, str):
                errors.append(self._type_error(f"{prefix}.{name}", "string", value))

        task_id = entry.get("id")
        if isinstance(task_id, str) and task_id and not is_safe_task_id(task_id):
            errors.append(
                ValidationError(
                    ValidationErrorType.INVALID_VALUE,
                    f"{prefix}.id",
                    f"Invalid task id '{task_id}': must not contain path separators or be '.' or '..'",
                    {"value": task_id},
                )
            )

        if "name" in entry and not isinstance(entry["name"], str):
            errors.append(self._type_error(f"{prefix}.name", "string", entry["name"]))

        if "enabled" in entry and not isinstance(entry["enabled"], bool):
            errors.append(self._type_error(f"{prefix}.enabled", "boolean", entry["enabled"]))

        task_type = entry.get("type")
        if isinstance(task_type, str) and task_type:
            if task_type not in (t.value for t in TaskType):
                errors.append(
                    ValidationError(
                        ValidationErrorType.INVALID_VALUE,
                        f"{prefix}.type",
                        f"Unknown task type '{task_type}'",
                        {"value": task_type, "allowed": [t.value for t in TaskType]},
                    )
                )
            else:
                errors.extend(self._check_task_config(prefix, TaskType(task_type), entry.get("config")))

        schedule = entry.get("schedule")
        if isinstance(schedule, str) and schedule:
            errors.extend(self._check_schedule(prefix, schedule, timezone_name, result))

        if errors:
            result.errors.extend(errors)
            return None

        return Task.from_dict(entry)

    def _check_task_config(self, prefix: str, task_type: TaskType, config: Any) -> List[ValidationError]:
        field_name = f"{prefix}.config"

        if config is None:
            return [
                ValidationError(
                    ValidationErrorType.REQUIRED_FIELD,
                    field_name,
                    f"Missing 'config' for {task_type.value} task",
                )
            ]
        if not isinstance(config, dict):
            return [self._type_error(field_name, "object", config)]

        if task_type == TaskType.HTTP:
            return self._check_http_config(field_name, config)

        command = config.get("command")
        if command is None or (isinstance(command, str) and not command.strip()):
            return [
                ValidationError(
                    ValidationErrorType.REQUIRED_FIELD,
                    f"{field_name}.command",
                    "Command task requires a non-empty 'command'",
                )
            ]
        if not isinstance(command, str):
            return [self._type_error(f"{field_name}.command", "string", command)]
        return []

    def _check_http_config(self, field_name: str, config: Dict[str, Any]) -> List[ValidationError]:
        errors: List[ValidationError] = []

        url = config.get("url")
        if url is None or url == "":
            errors.append(
                ValidationError(
                    ValidationErrorType.REQUIRED_FIELD,
                    f"{field_name}.url",
                    "HTTP task requires a 'url'",
                )
            )
        elif not isinstance(url, str):
            errors.append(self._type_error(f"{field_name}.url", "string", url))
        elif not self._is_http_url(url):
            errors.append(
                ValidationError(
                    ValidationErrorType.INVALID_VALUE,
                    f"{field_name}.url",
                    f"Invalid URL '{url}': expected an absolute http(s) URL",
                    {"value": url},
                )
            )

        method = config.get("method")
        if method is not None:
            if not isinstance(method, str):
                errors.append(self._type_error(f"{field_name}.method", "string", method))
            elif method.upper() not in HTTP_METHODS:
                errors.append(
                    ValidationError(
                        ValidationErrorType.INVALID_VALUE,
                        f"{field_name}.method",
                        f"Unsupported HTTP method '{method}'",
                        {"value": method, "allowed": list(HTTP_METHODS)},
                    )
                )

        headers = config.get("headers")
        if headers is not None and not isinstance(headers, dict):
            errors.append(self._type_error(f"{field_name}.headers", "object", headers))

        return errors

    def _check_schedule(
        self,
        prefix: str,
        schedule: str,
        timezone_name: str,
        result: ValidationResult,
    ) -> List[ValidationError]:
        try:
            tz = resolve_timezone(timezone_name)
        except ValueError:
            tz = resolve_timezone(SYSTEM_TIMEZONE)

        try:
            trigger = build_cron_trigger(schedule, tz)
        except ValueError as e:
            return [
                ValidationError(
                    ValidationErrorType.CRON_EXPRESSION,
                    f"{prefix}.schedule",
                    f"Invalid cron expression '{schedule}': {e}",
                    {"value": schedule, "format": "minute hour day month weekday"},
                )
            ]

        if self._check_frequency:
            fire_times = compute_fire_times(trigger, 2, datetime.now(timezone.utc).astimezone(tz))
            if len(fire_times) == 2:
                interval = (fire_times[1] - fire_times[0]).total_seconds()
                if interval < MIN_INTERVAL_SECONDS:
                    result.warnings.append(
                        ValidationError(
                            ValidationErrorType.CRON_EXPRESSION,
                            f"{prefix}.schedule",
                            f"Schedule '{schedule}' fires every {int(interval)}s; "
                            "runs may overlap",
                            {"value": schedule, "intervalSeconds": interval},
                        )
                    )
        return []

    @staticmethod
    def _is_http_url(value: str) -> bool:
        try:
            url = httpx.URL(value)
        except (httpx.InvalidURL, TypeError, ValueError):
            return False
        return url.scheme in ("http", "https") and bool(url.host)

    @staticmethod
    def _type_error(field_name: str, expected: str, value: Any) -> ValidationError:
        return ValidationError(
            ValidationErrorType.INVALID_TYPE,
            field_name,
            f"Expected {expected}, got {type(value).__name__}",
            {"expected": expected, "actual": type(value).__name__},
        )
