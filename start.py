#!/usr/bin/env python3
"""
Daily Protagonist - startup script
"""
import os
import shutil
import sys

from dotenv import load_dotenv

# make the project root importable when run from elsewhere
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

ENV_FILE = ".env"
ENV_EXAMPLE = ".env.example"
REQUIRED_KEYS = ("TEXT_PRIMARY_API_KEY", "TEXT_SECONDARY_API_KEY", "REPLICATE_API_KEY", "IMAGE_API_KEY")


def check_env():
    """Check that a .env exists and carries every provider key"""
    if not os.path.exists(ENV_FILE):
        print("Config file not found, creating it...")
        if not os.path.exists(ENV_EXAMPLE):
            print(f"Template {ENV_EXAMPLE} is missing")
            return False
        shutil.copy(ENV_EXAMPLE, ENV_FILE)
        print(f"Created {ENV_FILE}; fill in your API keys and run again")
        return False

    load_dotenv(ENV_FILE)
    missing = [key for key in REQUIRED_KEYS if os.getenv(key, "") in ("", "your_api_key_here")]
    if missing:
        print(f"Set these keys in {ENV_FILE}: {', '.join(missing)}")
        return False
    return True


def init_database():
    """Create missing tables"""
    from protagonist.config.settings import settings
    from protagonist.database.models import create_session_factory, init_db

    from sqlalchemy.exc import SQLAlchemyError

    print("Initializing database...")
    try:
        init_db(create_session_factory(settings.database_url))
    except SQLAlchemyError as e:
        print(f"Database initialization failed: {e}")
        return False
    print("Database ready")
    return True


def start_server():
    """Run the API under uvicorn"""
    import uvicorn

    from protagonist.api.app import create_app
    from protagonist.config.settings import settings
    from protagonist.logger_config import setup_logging

    setup_logging(settings.log_level, settings.log_dir)

    print(f"\nStarting service at http://{settings.host}:{settings.port}")
    print(f"API docs: http://{settings.host}:{settings.port}/docs")
    print("\nPress Ctrl+C to stop\n")

    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port, log_config=None)


def main():
    print("Daily Protagonist v1.0")

    if not check_env():
        sys.exit(1)

    if not init_database():
        sys.exit(1)

    try:
        start_server()
    except KeyboardInterrupt:
        print("\nService stopped")


if __name__ == "__main__":
    main()
