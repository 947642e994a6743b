"""Standard exit codes for cronward.

This module defines the exit codes used across the cronward CLI
for consistent error reporting and scripting support.
"""


class ExitCode:
    """Standard exit codes for cronward.

    These codes follow common Unix conventions where possible:
    - 0: Success
    - 1: General error
    - 130: Terminated by Ctrl+C (SIGINT)

    cronward-specific codes start at 2:
    - 2: Configuration error (invalid tasks file or settings)
    - 3: Task execution failed
    - 4: Scheduler error
    - 5: Network error
    - 6: Storage error (history files)
    - 7: Invalid argument
    - 8: Not found
    - 9: Permission denied
    """

    # Standard success
    SUCCESS = 0

    # General errors
    GENERAL_ERROR = 1

    # cronward-specific errors (2-9)
    CONFIGURATION_ERROR = 2
    TASK_FAILED = 3
    SCHEDULER_ERROR = 4
    NETWORK_ERROR = 5
    STORAGE_ERROR = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8
    PERMISSION_DENIED = 9

    # Signal-based exits (128 + signal number)
    CANCELLED = 130  # Ctrl+C (SIGINT = 2)

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the name of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable name for the exit code
        """
        names = {
            cls.SUCCESS: "SUCCESS",
            cls.GENERAL_ERROR: "GENERAL_ERROR",
            cls.CONFIGURATION_ERROR: "CONFIGURATION_ERROR",
            cls.TASK_FAILED: "TASK_FAILED",
            cls.SCHEDULER_ERROR: "SCHEDULER_ERROR",
            cls.NETWORK_ERROR: "NETWORK_ERROR",
            cls.STORAGE_ERROR: "STORAGE_ERROR",
            cls.INVALID_ARGUMENT: "INVALID_ARGUMENT",
            cls.NOT_FOUND: "NOT_FOUND",
            cls.PERMISSION_DENIED: "PERMISSION_DENIED",
            cls.CANCELLED: "CANCELLED",
        }
        return names.get(code, f"UNKNOWN({code})")

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get the description of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable description for the exit code
        """
        descriptions = {
            cls.SUCCESS: "Operation completed successfully",
            cls.GENERAL_ERROR: "An unexpected error occurred",
            cls.CONFIGURATION_ERROR: "Configuration error or invalid tasks file",
            cls.TASK_FAILED: "Task execution failed",
            cls.SCHEDULER_ERROR: "Scheduler could not be started or reached",
            cls.NETWORK_ERROR: "Network or connectivity error",
            cls.STORAGE_ERROR: "History storage error",
            cls.INVALID_ARGUMENT: "Invalid command-line argument",
            cls.NOT_FOUND: "Requested resource not found",
            cls.PERMISSION_DENIED: "Permission denied",
            cls.CANCELLED: "Operation cancelled by user",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")
