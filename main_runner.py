# main_runner.py
import os
import sys
import logging
import importlib.util

import questionary
from rich.console import Console

from config import MODULE_PATH

console = Console()
logger = logging.getLogger(__name__)


def list_task_modules(module_path=MODULE_PATH):
    """Runnable task files in ``module_path``; names starting with ``_`` are private."""
    if not os.path.isdir(module_path):
        return []
    return sorted(f for f in os.listdir(module_path) if f.endswith(".py") and not f.startswith("_"))


def load_and_run_module(module_path):
    """
    Load a module from the given path and run its main function.
    """
    module_name = os.path.splitext(os.path.basename(module_path))[0]
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if not hasattr(module, "main"):
        console.log(f"[yellow]No main() function found in {module_name}. Skipping...[/yellow]")
        return False
    module.main()
    return True


def run_selected_module():
    """
    Allow the user to select which module to run from the available Python files.
    """
    if not os.path.isdir(MODULE_PATH):
        console.log(f"[red]The path '{MODULE_PATH}' is not a valid directory.[/red]")
        return

    python_files = list_task_modules(MODULE_PATH)
    if not python_files:
        console.log("[yellow]No Python modules found in the specified directory.[/yellow]")
        return

    # Show titles without the .py extension, but keep full filename as value
    choices = [
        questionary.Choice(title=f"{idx + 1}. {os.path.splitext(fname)[0]}", value=fname)
        for idx, fname in enumerate(python_files)
    ]
    selected_file = questionary.select("Select the task you want to run:", choices=choices).ask()
    if not selected_file:
        console.log("No module selected.")
        return

    module_path = os.path.join(MODULE_PATH, selected_file)
    try:
        load_and_run_module(module_path)
    except KeyboardInterrupt:
        console.log("[yellow]Interrupted.[/yellow]")
    except Exception:
        logger.exception("Error running %s", module_path)
        console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    run_selected_module()
