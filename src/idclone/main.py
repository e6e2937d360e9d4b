"""Application entry point for the idclone session server."""

from idclone.app import App
from idclone.config import Config
from idclone.logging import setup_logging
from idclone.web.runner import run_server


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
