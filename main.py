#!/usr/bin/env python3
"""
Virtual Date - Main Application Entry Point
Chat with an animated anime-style date partner driven by Gemini, with
optional ElevenLabs speech and lip-sync.

Modes:
- HTTP API for the browser front end (default)
- Interactive console date (--console)

Version: 1.0.0
Python: 3.11+
"""

import sys
import asyncio
import logging
from typing import Optional

import typer

from virtual_date.core.application import DateApplication
from virtual_date.core.config import load_config, save_config
from virtual_date.server.api import run_server
from virtual_date.utils.logger import setup_logging

cli = typer.Typer(add_completion=False, help="Virtual Date chat application")

def check_python_version():
    """Ensure compatible Python version."""
    if sys.version_info < (3, 11):
        print("❌ Python 3.11 or higher is required!")
        print(f"Current version: {sys.version}")
        sys.exit(1)

@cli.command()
def main(
    console: bool = typer.Option(False, "--console", help="Run an interactive date in the terminal"),
    config_file: str = typer.Option("configs/config.yaml", "--config", help="Path to config.yaml"),
    persona: Optional[str] = typer.Option(None, "--persona", help="Persona id, e.g. arisa or alex"),
    write_config: Optional[str] = typer.Option(
        None, "--write-config", help="Write the effective configuration (no API keys) to this path and exit"),
):
    """Start the HTTP API, or a console date with --console."""
    check_python_version()

    config = load_config(config_file)
    if write_config:
        save_config(config, write_config)
        print(f"Configuration written to {write_config}")
        return

    setup_logging(config.log_level, str(config.log_dir), console=not console)
    logger = logging.getLogger(__name__)
    logger.info(f"Configuration loaded: {config.app_name} {config.version}")

    try:
        if console:
            app = DateApplication(config, persona_id=persona)
            asyncio.run(app.run_console())
        else:
            run_server(config)
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        print("\n👋 Goodbye!")
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        print(f"❌ Application error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    cli()
