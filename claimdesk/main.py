"""Main entry point for the claims engine"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST, before any other imports
# Find the .env file in the project root
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

from claimdesk.constants import MatchJobType
from claimdesk.orchestrator.engine import ClaimDeskEngine
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


async def run(argv):
    engine = ClaimDeskEngine()
    try:
        if len(argv) == 2:
            job_type, record_id = MatchJobType(argv[0]), argv[1]
            matches = await engine.process_match_job(job_type, record_id)
            await engine.notifier.drain()
            return {'status': 'completed', 'job_type': job_type.value, 'matches': len(matches)}
        return await engine.run_rescan_cycle()
    finally:
        await engine.close()


def main(argv=None):
    """
    Main entry point

    With no arguments, rescans all pending matches. With
    `<ITEM_CREATED|REPORT_CREATED> <id>`, runs one match job.
    """
    argv = sys.argv[1:] if argv is None else argv
    logger.info("=" * 60)
    logger.info("CLAIMDESK - Lost & Found Matching and Claims Engine")
    logger.info("=" * 60)

    try:
        results = asyncio.run(run(argv))

        logger.info("=" * 60)
        logger.info("RUN SUMMARY")
        logger.info("=" * 60)
        for key, value in results.items():
            logger.info(f"{key}: {value}")
        logger.info("=" * 60)

        return results

    except Exception as e:
        logger.error(f"Main execution failed: {e}")
        raise


if __name__ == "__main__":
    main()
