"""Run the sponsorship service with uvicorn."""

import uvicorn

from .app import create_app
from .core import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
