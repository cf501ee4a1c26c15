import logging

from config import config
from tapminer.services import build_services
from tapminer.tasks.scheduled import DistributionScheduler
from tapminer.utils.logger import setup_logging
from tapminer.web import create_app

setup_logging(config.LOG_LEVEL, config.LOG_FILE)
logger = logging.getLogger(__name__)

services = build_services(config)
app = create_app(config, services)

scheduler = None
if config.AUTO_DISTRIBUTE:
    scheduler = DistributionScheduler(services.orchestrator, interval=config.AUTO_DISTRIBUTE_INTERVAL)
    scheduler.start()

if __name__ == '__main__':
    debug_mode = config.ENV != 'production'

    logger.info(f"Starting TapMiner on port {config.PORT}, debug={debug_mode}")
    # one process only: the orchestrator lock and scheduler are in-memory
    app.run(host='0.0.0.0', port=config.PORT, debug=debug_mode, use_reloader=False)
