"""Run the API server with ``python -m parley``."""

import uvicorn

from .config.app_config import get_app_config


def main() -> None:
    app_config = get_app_config()
    uvicorn.run(
        "parley.main:app",
        host=app_config.app_host,
        port=app_config.app_port,
        reload=app_config.app_debug,
        log_config=None,
    )


if __name__ == "__main__":
    main()
