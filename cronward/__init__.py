"""cronward - recurring task scheduler for HTTP calls and shell commands."""

__app_name__ = "cronward"
__version__ = "0.1.0"
