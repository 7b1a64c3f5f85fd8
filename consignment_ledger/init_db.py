import logging

from consignment_ledger.db import engine
from consignment_ledger.logging_config import configure_logging
from consignment_ledger.models import Base

logger = logging.getLogger('consignment_ledger.init_db')


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info('Schema created/verified on %s', engine.url.render_as_string(hide_password=True))


if __name__ == '__main__':
    configure_logging()
    init_db()
