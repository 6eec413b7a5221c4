import os

import uvicorn

from zoho_bookkeeper.app import app
from zoho_bookkeeper.core import settings
from zoho_bookkeeper.logger import get_logging_config


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=settings.get_env_int("PORT", 8000, min_value=1),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    run()
