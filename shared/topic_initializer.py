"""
topic_initializer.py - Kafka Topic Auto-Creation Utility

PURPOSE:
    Creates the Kafka topics the inventory service reads and writes on startup
    (see shared.events.ALL_TOPICS) with the configured partitioning.

RETRY LOGIC:
    - Brokers may not be ready when the service boots
    - Up to 10 attempts with 3-second delays
    - Topics already present on the cluster are left alone (idempotent)

USAGE:
    create_topics("kafka:9092", replication_factor=1)
"""

import logging
import time
from typing import Iterable, List, Optional

from confluent_kafka.admin import AdminClient, NewTopic

from shared.events import ALL_TOPICS

logger = logging.getLogger(__name__)


def missing_topics(admin_client: AdminClient, wanted: Iterable[str], timeout: float = 10) -> List[str]:
    """Topics from ``wanted`` that the cluster does not know yet."""
    existing = set(admin_client.list_topics(timeout=timeout).topics)
    return [topic for topic in wanted if topic not in existing]


def create_topics(
    bootstrap_servers: str,
    num_partitions: int = 3,
    replication_factor: int = 1,
    topics: Optional[List[str]] = None,
    max_retries: int = 10,
    retry_delay: float = 3,
) -> List[str]:
    """
    Create the service's Kafka topics; returns the names that were created.

    Args:
        bootstrap_servers: Comma-separated Kafka broker addresses
        num_partitions: Number of partitions per topic
        replication_factor: Number of replicas per partition
        topics: Topic names, defaults to every topic in shared.events
        max_retries: Attempts before giving up
        retry_delay: Seconds between attempts
    """
    admin_client = AdminClient({"bootstrap.servers": bootstrap_servers})
    wanted = topics or ALL_TOPICS

    for attempt in range(max_retries):
        try:
            pending = missing_topics(admin_client, wanted)
            if not pending:
                logger.info(f"All {len(wanted)} topics already exist")
                return []

            logger.info(f"Creating {len(pending)} topics (attempt {attempt + 1}/{max_retries})...")
            futures = admin_client.create_topics(
                [NewTopic(name, num_partitions=num_partitions, replication_factor=replication_factor) for name in pending]
            )

            created = []
            for name, future in futures.items():
                try:
                    future.result(timeout=10)
                    created.append(name)
                    logger.info(f"Topic '{name}' created")
                except Exception as e:
                    # Another service may have created it between the listing and the request
                    if "TOPIC_ALREADY_EXISTS" in str(e) or "already exists" in str(e):
                        logger.info(f"Topic '{name}' already exists")
                    else:
                        logger.warning(f"Error creating topic '{name}': {e}")
            return created

        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Kafka not ready (attempt {attempt + 1}): {e}. Retrying in {retry_delay}s...")
                time.sleep(retry_delay)
            else:
                logger.error(f"Failed to create topics after {max_retries} attempts: {e}")
                raise
    return []
