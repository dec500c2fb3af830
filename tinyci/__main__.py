"""Run the tinyci server: ``python -m tinyci``."""

import uvicorn

from tinyci.config import settings


def main() -> None:
    uvicorn.run("tinyci.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
