from __future__ import annotations

import uvicorn

from taskapi.config import load_config
from taskapi.observability import get_json_logger


def main() -> None:
    cfg = load_config()
    get_json_logger("taskapi.gateway").info(
        "starting server",
        extra={"event": "server_start", "attributes": {"host": cfg.host, "port": cfg.port}},
    )
    # log_config=None keeps the handlers installed by configure_uvicorn_logging
    uvicorn.run("taskapi.gateway.asgi:app", host=cfg.host, port=cfg.port, log_config=None)


if __name__ == "__main__":
    main()
