import argparse
import json
import logging
import sys

from config import config
from tapminer.mining.distribution import DistributionStatus
from tapminer.services import build_services
from tapminer.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one reward distribution attempt")
    parser.add_argument('--session-id', type=int, default=None,
                        help="distribute this session instead of the oldest pending one")
    return parser.parse_args(argv)


def main(argv=None, services=None):
    args = parse_args(argv)
    services = services or build_services(config)

    logger.info("Starting one-shot distribution")
    outcome = services.orchestrator.attempt(args.session_id)
    print(json.dumps(outcome.to_dict(), indent=2))

    if outcome.status == DistributionStatus.FAILED:
        logger.error(f"Distribution failed: {outcome.message}")
        return 1
    return 0


if __name__ == '__main__':
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    sys.exit(main())
