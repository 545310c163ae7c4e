import logging

import uvicorn

from pharmapos.config import settings
from pharmapos.db.sqlite import init_db


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    init_db()

    uvicorn.run("pharmapos.web.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
