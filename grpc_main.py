import asyncio
import sys

from application.lifecycle import LifecycleCoordinator
from core.exceptions import CertificateGenerationError
from core.logging_config import get_logger


logger = get_logger(__name__)


async def main() -> None:
    coordinator = LifecycleCoordinator()
    await coordinator.run()


def cli() -> None:
    try:
        asyncio.run(main())
    except CertificateGenerationError as exc:
        logger.error("startup_aborted", error=exc.message)
        sys.exit(1)


if __name__ == "__main__":
    cli()
