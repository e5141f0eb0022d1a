from sqlmodel import SQLModel
from . import models  # noqa: F401  (registers tables)
from .crud import make_engine
from .logging_utils import get_logger, setup_logging

logger = get_logger("jbbly.init_db")


def init_db(url=None):
    engine = make_engine(url)
    SQLModel.metadata.create_all(engine)
    logger.info("db_initialized", extra={"path": str(engine.url)})
    return engine


if __name__ == '__main__':
    setup_logging()
    init_db()
