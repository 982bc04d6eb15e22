"""Mini README: Outer interfaces for DraftBudget.

Exports the FastAPI application factory serving the JSON API. The typer CLI
in ``main_budget_centre.py`` launches it and offers offline commands.
"""

from .web_app import create_application, create_default_application

__all__ = ["create_application", "create_default_application"]
