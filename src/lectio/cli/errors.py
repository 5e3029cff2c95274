"""Lectio rich error messages with actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from lectio.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from lectio.ingest.books import NT_BOOKS


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*."""
    env_var = f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix lectio.yaml (or ~/.lectio/config.yaml) and retry."
    )


def err_unknown_book(message: str) -> str:
    """Book or chapter outside the New Testament catalogue."""
    names = ", ".join(name for name, _ in NT_BOOKS)
    return (
        f"[red]Error:[/] {message}\n"
        f"  Known books: {names}"
    )


def err_no_db(db_path: str) -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  lectio ingest seed"
    )


def err_reset_not_development(environment: str) -> str:
    """Reset refused outside development."""
    return (
        f"[red]Error:[/] Reset is only allowed in development (current: '{environment}').\n"
        "  Set:  export LECTIO_ENVIRONMENT=development"
    )
