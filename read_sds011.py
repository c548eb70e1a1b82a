#!/usr/bin/env python3

import logging
import sys

from aqpoll.ingest.config import parse_config
from aqpoll.ingest.service import run_from_config


def main(argv=None):
    config = parse_config(argv)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    return run_from_config(config)


if __name__ == "__main__":
    sys.exit(main())
