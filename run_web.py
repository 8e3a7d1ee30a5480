#!/usr/bin/env python3
"""Web API entry point for overmind."""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from agent.config import load_config
from agent.log_setup import configure_logging
from web.app import create_app


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.json"
    config = load_config(config_path)
    configure_logging(config.log_dir, config.log_level)

    print(f"\n  overmind web API")
    print(f"  Model: {config.chat_model.provider}/{config.chat_model.model_name}")
    print(f"  Completion endpoint: {config.chat_model.base_url}")
    print(f"  Relay backend: {config.relay.backend}")
    print(f"  Listening on http://localhost:5000\n")

    app = create_app(config)
    app.run(host="0.0.0.0", port=5000, threaded=True)


if __name__ == "__main__":
    main()
