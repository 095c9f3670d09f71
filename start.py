"""
Launches the Slack order bot API with uvicorn.

    python start.py              # port from $PORT, else 3000
    python start.py --port 8080 --reload
"""

import argparse
import logging
import os
import socket

import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# googleapiclient logs every discovery lookup at INFO
logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.ERROR)

DEFAULT_PORT = 3000


def port_is_free(port: int, host: str = "0.0.0.0") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


def pick_port(preferred: int, tries: int = 10) -> int:
    """First free port at or above preferred; preferred itself if none is free."""
    for candidate in range(preferred, preferred + tries):
        if port_is_free(candidate):
            if candidate != preferred:
                logger.info(f"Port {preferred} is busy, using {candidate}")
            return candidate
    logger.warning(f"No free port in {preferred}-{preferred + tries - 1}, trying {preferred} anyway")
    return preferred


def main():
    parser = argparse.ArgumentParser(description="Run the Slack order bot")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.environ.get('PORT', DEFAULT_PORT)))
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    args = parser.parse_args()

    port = pick_port(args.port)
    logger.info(f"🚀 Starting Slack order bot on port {port}...")
    logger.info(f"Slack Events and Interactivity URL: http://<host>:{port}/slack/events")
    uvicorn.run("api:app", host=args.host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
