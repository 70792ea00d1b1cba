import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

from dub_agent.web import create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the dubbing API.")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Interface to bind.")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")), help="Port to listen on.")
    parser.add_argument("--log-level", type=str, default=os.getenv("DUB_LOG_LEVEL", "INFO"), help="Logging level.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    # Builds the agent eagerly: a missing ffmpeg binary or API key stops startup here.
    app = create_app()
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
