#!/usr/bin/env python3
"""
QuizMaster - Main Entry Point

Runs either the Discord quiz bot or the HTTP API. Configure settings in
config.json; the bot token may also come from the DISCORD_BOT_TOKEN
environment variable.

Usage:
    python main.py bot     # Discord bot (default)
    python main.py api     # HTTP API on the configured host/port

Environment Variables:
    DISCORD_BOT_TOKEN: Your Discord bot token (overrides config.json)
"""

import argparse
import asyncio
import sys
import os
import json
import logging
from pathlib import Path


def load_config(config_path="config.json"):
    """Load configuration from config.json file."""
    config_path = Path(config_path)

    if not config_path.exists():
        print(f"❌ Error: {config_path} not found!")
        print("Please copy config.json and adjust the settings.")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
        return config
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in {config_path}: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error loading {config_path}: {e}")
        sys.exit(1)


def get_bot_token(config):
    """Get bot token from environment variable or config file."""
    # Environment variable takes precedence
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == "YOUR_DISCORD_BOT_TOKEN_HERE":
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        sys.exit(1)

    return token


def setup_logging_from_config(config, log_name):
    """Set up logging based on configuration."""
    log_config = config.get('logging', {})
    log_level = getattr(logging, log_config.get('level', 'INFO').upper())
    log_directory = Path(log_config.get('log_directory', './logs/'))

    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / log_name, encoding='utf-8')
        ]
    )

    error_handler = logging.FileHandler(log_directory / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)


async def run_bot_with_config(config):
    """Run the bot with configuration."""
    setup_logging_from_config(config, "bot.log")
    token = get_bot_token(config)

    from quizmaster.bot import run_bot
    await run_bot(token, config)


def run_api_with_config(config):
    """Run the HTTP API with configuration."""
    setup_logging_from_config(config, "api.log")

    import uvicorn
    from quizmaster.api import create_app
    from quizmaster.config_manager import ConfigManager
    from quizmaster.data_manager import ScoreStore
    from quizmaster.question_source import OpenTriviaClient

    config_manager = ConfigManager()
    config_manager.apply_config(config)

    score_store = ScoreStore(config_manager.get_scores_file())
    score_store.load()
    summary = score_store.get_loading_summary()
    if summary['has_errors']:
        logging.warning(
            f"{summary['scores_file']} loaded with {len(summary['errors'])} problems; "
            f"{summary['total_scores']} scores available"
        )

    trivia_config = config.get('trivia', {})
    app = create_app(
        score_store,
        OpenTriviaClient(timeout=trivia_config.get('timeout', 10.0)),
        config_manager
    )

    api_config = config.get('api', {})
    uvicorn.run(
        app,
        host=api_config.get('host', '0.0.0.0'),
        port=int(os.getenv('PORT', api_config.get('port', 5000))),
        log_config=None
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="QuizMaster trivia quiz")
    parser.add_argument('mode', nargs='?', choices=['bot', 'api'], default='bot')
    parser.add_argument('--config', default='config.json', help="Path to the configuration file")
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.mode == 'api':
        print("🌐 Starting QuizMaster API...")
        run_api_with_config(config)
    else:
        print("🤖 Starting QuizMaster bot...")
        asyncio.run(run_bot_with_config(config))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n👋 Stopped by user")
    except Exception as e:
        print(f"❌ Failed to start: {e}")
        sys.exit(1)
