"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "EmptyPrefix": 1,
    "ValidationError": 2,
    "ValueError": 2,
    "UnsafePath": 2,
    "TransferError": 3,
    "LocalIOError": 4,
    "DownloadIncomplete": 12,
    "SessionCancelled": 130,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 0: Success
    - 1: Nothing found under the prefix (EmptyPrefix)
    - 2: Invalid input or unsafe key (ValidationError, ValueError, UnsafePath)
    - 3: Network/remote error (TransferError) or unknown error
    - 4: Local filesystem error (LocalIOError)
    - 12: Some files failed to download (DownloadIncomplete)
    - 130: Cancelled by the user (SessionCancelled)

    Args:
        exc: Exception to map

    Returns:
        Exit code, with 3 as fallback for unknown exceptions
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_error, print_failures

        # Show which files failed before exiting
        if type(e).__name__ == "DownloadIncomplete" and hasattr(e, "progress"):
            print_failures(e.progress)
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
