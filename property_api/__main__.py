import uvicorn

from .main import create_app
from .settings import settings


def main() -> None:
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
