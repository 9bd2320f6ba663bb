"""Process entry point: load configuration and serve the gateway with uvicorn.

Usage::

    tollgate-server            # reads .env from the working directory
    tollgate-server --env-file /etc/tollgate.env
"""

import argparse

import uvicorn

from app.config import Settings
from app.main import create_app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Tollgate billing gateway.")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    args = parser.parse_args(argv)

    settings = Settings(_env_file=args.env_file)  # type: ignore[call-arg]
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=settings.keep_alive_timeout_seconds,
        timeout_graceful_shutdown=settings.graceful_shutdown_seconds,
    )


if __name__ == "__main__":
    main()
