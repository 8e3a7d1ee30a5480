#!/usr/bin/env python3
"""CLI entry point for overmind.

    run_cli.py [config.json]                    chat REPL
    run_cli.py plugin <api_key> [config.json]   reference remote client
"""

import asyncio
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from agent.config import load_config
from agent.log_setup import configure_logging
from cli.cli_app import CLIApp
from cli.plugin_client import PluginClient

SERVER_URL = os.environ.get("OVERMIND_SERVER", "http://localhost:5000")


def main():
    args = sys.argv[1:]
    if args and args[0] == "plugin":
        if len(args) < 2:
            print("Usage: run_cli.py plugin <api_key> [config.json]")
            sys.exit(2)
        config = load_config(args[2] if len(args) > 2 else "config.json")
        configure_logging(config.log_dir, config.log_level)
        client = PluginClient(SERVER_URL, args[1])
        try:
            asyncio.run(client.run())
        except KeyboardInterrupt:
            pass
        return

    config = load_config(args[0] if args else "config.json")
    configure_logging(config.log_dir, config.log_level, console=False)
    app = CLIApp(config, server_url=SERVER_URL, credential=os.environ.get("OVERMIND_API_KEY"))
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
