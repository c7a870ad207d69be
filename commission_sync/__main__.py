"""Entry point for a single crawl and reconciliation run"""
import json
import logging
import os
import sys
import traceback

from commission_sync.config import settings
from commission_sync.db import db
from commission_sync.refresh import crawler_status, refresh_exchange

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

def run() -> None:
    """Crawl EXCHANGE_ID for TARGET_DATE (default today) and write the batch result."""
    try:
        if settings.EXCHANGE_ID is None:
            raise ValueError("EXCHANGE_ID setting is required")

        db.init()

        # Log config (excluding sensitive data)
        safe_config = settings.model_dump(exclude={'DATABASE_URL', 'DB_PASSWORD', 'PROXY_API_KEY'})
        logger.info("Using configuration:")
        logger.info(json.dumps(safe_config, indent=2))

        result = db.run(refresh_exchange, settings.EXCHANGE_ID, settings.TARGET_DATE)
        status = db.run(crawler_status, settings.EXCHANGE_ID)
        logger.info(f"Crawler status: {json.dumps(status)}")

        os.makedirs(settings.OUTPUT_DIR, exist_ok=True)
        output_path = os.path.join(settings.OUTPUT_DIR, "results.json")
        with open(output_path, 'w') as f:
            json.dump(result.model_dump(mode='json'), f, indent=2)

        if result.authentication_failed:
            logger.error("Crawl aborted: crawler token rejected")
            sys.exit(1)

        logger.info(f"Crawl complete: {result.model_dump(mode='json', exclude={'sample'})}")

    except Exception as e:
        logger.error(f"Error during crawl: {e}")
        traceback.print_exc()
        sys.exit(1)
    finally:
        db.dispose()

if __name__ == "__main__":
    run()
