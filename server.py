from __future__ import annotations

import uvicorn
from starlette.applications import Starlette

from monzo_pots.app import create_app as build_app
from monzo_pots.env import get_listen_address, load_env, load_settings, setup_logging


def create_app() -> Starlette:
    load_env()
    setup_logging()
    settings = load_settings()
    return build_app(settings)


def main() -> None:
    host, port = get_listen_address()
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
