import uvicorn

from .api import router
from .core.config import settings
from .core.setup import create_application, lifespan_factory

app = create_application(
    router=router,
    settings=settings,
    lifespan=lifespan_factory(settings),
)


def run() -> None:
    uvicorn.run("sheetbase.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
