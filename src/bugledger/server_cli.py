"""``bugledger-server``: run the ingestion API under uvicorn."""

import argparse
import os

from bugledger.config import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bugledger-server",
        description="Bug report ingestion API with fingerprint deduplication",
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind host (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Bind port (default: {settings.port})")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Store reports in a local SQLite file and log to the console",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["debug", "info", "warning", "error"],
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    # The app module builds its Settings at import, so flags travel as env vars.
    if args.local:
        os.environ["BUGLEDGER_LOCAL_MODE"] = "1"
    os.environ["BUGLEDGER_LOG_LEVEL"] = args.log_level

    import uvicorn

    uvicorn.run("bugledger.main:app", host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
