"""Create a project (tenant) and print its API key.

Usage:
    python -m scripts.create_project "Acme Web" [--webhook-url URL] [--env-file .env]

The key is printed once; store it in the tenant application's secrets.
"""

import argparse
import asyncio

from app.config import Settings
from app.database import build_engine, build_session_factory
from app.services.project_service import create_project


async def run(settings: Settings, name: str, webhook_url: str | None) -> None:
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    try:
        async with session_factory() as session:
            project = await create_project(session, name, webhook_url=webhook_url)
            await session.commit()
    finally:
        await engine.dispose()

    print()
    print("=" * 60)
    print("  Project created")
    print("=" * 60)
    print()
    print(f"  Project:    {project.name}")
    print(f"  Project ID: {project.id}")
    if project.webhook_url:
        print(f"  Webhook:    {project.webhook_url}")
    print()
    print(f"  API Key:    {project.api_key}")
    print()
    print("  Send it as the X-API-Key header on /api/v1/* requests.")
    print("=" * 60)
    print()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create a billing gateway project.")
    parser.add_argument("name", help="human-readable project name")
    parser.add_argument("--webhook-url", default=None, help="optional tenant webhook URL")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    args = parser.parse_args(argv)

    settings = Settings(_env_file=args.env_file)  # type: ignore[call-arg]
    asyncio.run(run(settings, args.name, args.webhook_url))


if __name__ == "__main__":
    main()
