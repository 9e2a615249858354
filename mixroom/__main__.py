"""Run the API with uvicorn: ``python -m mixroom``."""
import uvicorn

from mixroom.config import settings


def main() -> None:
    uvicorn.run(
        "mixroom.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
