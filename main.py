"""Dungeon Crawl — dev launcher. Starts the API server in watch mode."""

import argparse
import logging

import uvicorn

from backend.config import get_settings


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Dungeon Crawl dev launcher")
    parser.add_argument("--host", default=settings["host"])
    parser.add_argument("--port", type=int, default=settings["port"])
    parser.add_argument("--debug", action="store_true", help="Log LLM traffic")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    print(f"Starting backend on http://localhost:{args.port} ...")
    uvicorn.run("backend.app:app", host=args.host, port=args.port, reload=True)


if __name__ == "__main__":
    main()
