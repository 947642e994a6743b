"""Task executor for running scheduled tasks.

Each run produces a normalized TaskOutcome. The executor never writes
history itself; the CronScheduler records outcomes after dispatch.
"""

import asyncio
import errno
import json
import logging
import socket
import time
from typing import Any, Dict, Optional

import httpx

from cronward.scheduler.models import (
    ExecutionStatus,
    Task,
    TaskOutcome,
    TaskType,
    truncate,
    utc_now,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30.0

CONNECTION_REFUSED = "Connection refused"
CONNECTION_TIMEOUT = "Connection timeout"
HOST_NOT_FOUND = "Host not found"
TRANSPORT_FAILURES = (CONNECTION_REFUSED, CONNECTION_TIMEOUT, HOST_NOT_FOUND)

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
)


def _iter_causes(error: BaseException):
    """Walk the cause chain, descending into exception groups."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, BaseExceptionGroup):
            pending.extend(current.exceptions)
        pending.append(current.__cause__ or current.__context__)


def summarize_error(error: BaseException) -> str:
    """Map an execution error to a fixed human-readable summary.

    The same failure class always yields the same summary, so history
    can be grouped by it.
    """
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return f"HTTP {response.status_code}: {response.reason_phrase or 'Unknown Error'}"

    if isinstance(error, httpx.TimeoutException):
        return CONNECTION_TIMEOUT

    for cause in _iter_causes(error):
        if isinstance(cause, ConnectionRefusedError):
            return CONNECTION_REFUSED
        if isinstance(cause, socket.gaierror):
            return HOST_NOT_FOUND
        if isinstance(cause, (TimeoutError, socket.timeout)):
            return CONNECTION_TIMEOUT
        if isinstance(cause, OSError) and cause.errno == errno.ECONNREFUSED:
            return CONNECTION_REFUSED

    message = str(error)
    lowered = message.lower()
    if "connection refused" in lowered:
        return CONNECTION_REFUSED
    if any(marker in lowered for marker in _DNS_FAILURE_MARKERS):
        return HOST_NOT_FOUND
    if "timed out" in lowered:
        return CONNECTION_TIMEOUT

    return f"{type(error).__name__}: {message}" if message else type(error).__name__


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _command_snippet(stdout: str, stderr: str) -> str:
    output = []
    if stdout.strip():
        output.append(f"stdout: {stdout.strip()}")
    if stderr.strip():
        output.append(f"stderr: {stderr.strip()}")
    return " | ".join(output)


async def run_http(
    task: Task,
    timeout: float = HTTP_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TaskOutcome:
    """Issue the HTTP request described by a task.

    Any HTTP response counts as a successful execution; the status code is
    recorded as-is. Only transport failures (refused, timeout, DNS) fail.

    Args:
        task: HTTP task
        timeout: Hard timeout for the whole request, in seconds. httpx only
            bounds each connect and read step, so the exchange is also
            wrapped in an overall deadline.
        transport: Optional httpx transport (used by tests)

    Returns:
        Normalized outcome
    """
    started_at = utc_now()
    started = time.monotonic()

    request_kwargs: Dict[str, Any] = {"headers": task.headers}
    body = task.body
    if body is not None:
        if isinstance(body, (dict, list)):
            request_kwargs["json"] = body
        else:
            request_kwargs["content"] = str(body)

    try:
        async with asyncio.timeout(timeout):
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                response = await client.request(task.method, task.url, **request_kwargs)
    except Exception as e:
        summary = summarize_error(e)
        logger.error(f"HTTP task '{task.name}' failed: {summary}")
        return TaskOutcome(
            status=ExecutionStatus.FAILURE,
            elapsed_ms=_elapsed_ms(started),
            started_at=started_at,
            finished_at=utc_now(),
            details={"error_summary": summary},
        )

    text = response.text
    details: Dict[str, Any] = {"http_status": response.status_code}
    if text:
        details["response_snippet"] = truncate(text)
    if response.status_code >= 400:
        details["error_summary"] = (
            f"HTTP {response.status_code}: {response.reason_phrase or 'Unknown Error'}"
        )

    logger.info(f"HTTP task '{task.name}' completed with status {response.status_code}")
    logger.debug(f"Response for '{task.name}': {truncate(text)}")

    return TaskOutcome(
        status=ExecutionStatus.SUCCESS,
        elapsed_ms=_elapsed_ms(started),
        started_at=started_at,
        finished_at=utc_now(),
        details=details,
        result={"httpStatus": response.status_code, "response": _decode_body(response)},
    )


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return response.text


async def run_command(task: Task) -> TaskOutcome:
    """Run a task's command through the platform shell.

    No timeout is applied; a hanging command keeps its run open.

    Returns:
        Normalized outcome with stdout/stderr preserved in the snippet
    """
    started_at = utc_now()
    started = time.monotonic()

    try:
        process = await asyncio.create_subprocess_shell(
            task.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout_bytes, stderr_bytes = await process.communicate()
    except OSError as e:
        summary = f"Failed to start command: {e.strerror or e}"
        logger.error(f"Command task '{task.name}' failed: {summary}")
        return TaskOutcome(
            status=ExecutionStatus.FAILURE,
            elapsed_ms=_elapsed_ms(started),
            started_at=started_at,
            finished_at=utc_now(),
            details={"error_summary": summary},
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")
    snippet = _command_snippet(stdout, stderr)
    result = {"stdout": stdout, "stderr": stderr, "exitCode": process.returncode}

    if process.returncode != 0:
        summary = f"Command exited with code {process.returncode}"
        logger.error(f"Command task '{task.name}' failed: {summary}")
        details: Dict[str, Any] = {"error_summary": summary}
        if snippet:
            details["response_snippet"] = truncate(snippet)
        return TaskOutcome(
            status=ExecutionStatus.FAILURE,
            elapsed_ms=_elapsed_ms(started),
            started_at=started_at,
            finished_at=utc_now(),
            details=details,
            result=result,
        )

    logger.info(f"Command task '{task.name}' completed successfully")
    if stdout:
        logger.debug(f"stdout for '{task.name}': {stdout.strip()}")
    if stderr:
        logger.debug(f"stderr for '{task.name}': {stderr.strip()}")

    return TaskOutcome(
        status=ExecutionStatus.SUCCESS,
        elapsed_ms=_elapsed_ms(started),
        started_at=started_at,
        finished_at=utc_now(),
        details={"response_snippet": truncate(snippet or "[No output]")},
        result=result,
    )


class TaskExecutor:
    """Runs tasks by type and always returns a TaskOutcome.

    Example:
        executor = TaskExecutor(http_timeout=30.0)
        outcome = await executor.execute(task)
    """

    def __init__(
        self,
        http_timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the task executor.

        Args:
            http_timeout: Timeout for HTTP tasks, in seconds
            transport: Optional httpx transport shared by HTTP tasks
        """
        self._http_timeout = http_timeout
        self._transport = transport

    async def execute(self, task: Task) -> TaskOutcome:
        """Execute a task once.

        Args:
            task: The task to execute

        Returns:
            Execution outcome; unexpected errors become failures
        """
        started_at = utc_now()
        started = time.monotonic()

        try:
            if task.type == TaskType.HTTP:
                return await run_http(task, self._http_timeout, self._transport)
            if task.type == TaskType.COMMAND:
                return await run_command(task)
            raise ValueError(f"Unknown task type: {task.type}")
        except Exception as e:
            logger.error(f"Task '{task.name}' execution failed: {e}")
            return TaskOutcome(
                status=ExecutionStatus.FAILURE,
                elapsed_ms=_elapsed_ms(started),
                started_at=started_at,
                finished_at=utc_now(),
                details={"error_summary": summarize_error(e)},
            )
