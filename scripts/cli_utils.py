"""Shared CLI utilities for call-center scripts."""

import sys

from dotenv import load_dotenv

from call_center.core.config import Settings, get_settings

load_dotenv()


def setup_environment() -> Settings:
    """Setup and validate environment."""
    settings = get_settings()

    missing = [
        name
        for name, value in (
            ("RETELL_API_KEY", settings.retell_api_key),
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_KEY", settings.supabase_key),
        )
        if not value
    ]
    if missing:
        print(f"❌ Error: {', '.join(missing)} not set in environment")
        print("   Set them in your .env file")
        sys.exit(1)

    if not settings.openai_api_key:
        print("⚠️  Warning: OPENAI_API_KEY not set, transcripts will get degraded analysis")

    return settings


def print_section(title: str, width: int = 70) -> None:
    """Print a formatted section header."""
    print(f"\n{'='*width}")
    print(f"{title}")
    print(f"{'='*width}")


def print_subsection(title: str, width: int = 70) -> None:
    """Print a formatted subsection header."""
    print(f"\n{'─'*width}")
    print(f"{title}")
    print(f"{'─'*width}")
