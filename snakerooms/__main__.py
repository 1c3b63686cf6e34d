from __future__ import annotations

import uvicorn

from snakerooms.common.config import settings


def main() -> None:
    uvicorn.run("snakerooms.api.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
