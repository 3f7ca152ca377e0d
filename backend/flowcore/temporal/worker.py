import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from flowcore.config import TASK_QUEUE, TEMPORAL_ADDRESS, TEMPORAL_NAMESPACE
from flowcore.logging_config import get_worker_logger

from .activities import ALL_ACTIVITIES
from .workflows import GenericWorkflow

logger = get_worker_logger()


async def main() -> None:
    from app.database import init_db

    await init_db()
    client = await Client.connect(TEMPORAL_ADDRESS, namespace=TEMPORAL_NAMESPACE)
    worker = Worker(
        client,
        task_queue=TASK_QUEUE,
        workflows=[GenericWorkflow],
        activities=ALL_ACTIVITIES,
    )
    logger.info(f"Worker polling {TASK_QUEUE} on {TEMPORAL_ADDRESS}")
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
