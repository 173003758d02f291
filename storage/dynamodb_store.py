"""DynamoDB-backed remote event store."""
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from storage.keys import PushKeyGenerator
from storage.remote import (
    CancelHandler,
    ChangeHandler,
    Children,
    RemoteEventStore,
    Subscription,
    SubscriptionCancelled,
)

logger = logging.getLogger(__name__)


def _to_dynamodb(value: Any) -> Any:
    """Convert floats to Decimal, which is the only number type boto3 accepts."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamodb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamodb(v) for v in value]
    return value


def _from_dynamodb(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamodb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamodb(v) for v in value]
    return value


class PartitionPoller(Subscription):
    """
    Subscription that turns a DynamoDB partition into a change feed.

    DynamoDB has no push channel for a single partition, so the poller queries
    the partition on an interval and emits the full child set whenever it
    differs from the previous emission.
    """

    def __init__(
        self,
        store: "DynamoDBEventStore",
        user_id: str,
        on_change: ChangeHandler,
        on_cancelled: Optional[CancelHandler],
        poll_interval: float
    ):
        super().__init__(user_id, on_change, on_cancelled)
        self.store = store
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._poll_lock = threading.Lock()
        self._last_children: Optional[Children] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run,
            name=f"partition-poller-{self.user_id}",
            daemon=True
        )
        self._thread.start()

    def poll(self) -> bool:
        """
        Query the partition once and emit if it changed.

        Returns:
            True if a notification was emitted
        """
        with self._poll_lock:
            if not self.active:
                return False
            try:
                children = self.store.query_partition(self.user_id)
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Polling partition {self.user_id} failed: {e}")
                self.notify_cancelled(SubscriptionCancelled(self.user_id, e))
                return False

            if children == self._last_children:
                return False
            self._last_children = children

            logger.debug(f"Partition {self.user_id} changed, emitting {len(children)} children")
            # Emitted under the poll lock so notifications keep query order.
            self.notify_change(children)
            return True

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            if not self.active:
                break
            self.poll()

    def _stopped(self) -> None:
        self._stop.set()


class DynamoDBEventStore(RemoteEventStore):
    """Remote store backed by a DynamoDB table keyed by (user_id, event_id)."""

    PARTITION_KEY = 'user_id'
    SORT_KEY = 'event_id'

    def __init__(
        self,
        table_name: str,
        region_name: Optional[str] = None,
        poll_interval: float = 5.0,
        key_generator: Optional[PushKeyGenerator] = None
    ):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region; boto3's default resolution when None
            poll_interval: Seconds between partition polls for subscriptions
            key_generator: Generator for fresh event identifiers
        """
        self.table_name = table_name
        self.region_name = region_name
        self.poll_interval = poll_interval
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self._keys = key_generator or PushKeyGenerator()
        self._pollers: List[PartitionPoller] = []
        self._lock = threading.Lock()
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def create_table(self) -> None:
        """Create the events table with on-demand billing and wait for it."""
        logger.info(f"Creating DynamoDB table: {self.table_name}")
        self.table = self.dynamodb.create_table(
            TableName=self.table_name,
            KeySchema=[
                {'AttributeName': self.PARTITION_KEY, 'KeyType': 'HASH'},
                {'AttributeName': self.SORT_KEY, 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': self.PARTITION_KEY, 'AttributeType': 'S'},
                {'AttributeName': self.SORT_KEY, 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        self.table.wait_until_exists()

    def subscribe(
        self,
        user_id: str,
        on_change: ChangeHandler,
        on_cancelled: Optional[CancelHandler] = None
    ) -> Subscription:
        """
        Subscribe to a partition.

        The initial load happens before this method returns; later changes are
        picked up by a background poller.
        """
        poller = PartitionPoller(
            self, user_id, on_change, on_cancelled, self.poll_interval
        )
        with self._lock:
            self._pollers = [p for p in self._pollers if p.active]
            self._pollers.append(poller)

        logger.info(
            f"Subscribing to partition {user_id} "
            f"(poll interval {self.poll_interval}s)"
        )
        poller.poll()
        if poller.active:
            poller.start()
        return poller

    def query_partition(self, user_id: str) -> Children:
        """
        Read every record in a partition, ordered by event_id.

        Raises:
            ClientError: If the query fails
        """
        query_kwargs = {
            'KeyConditionExpression': Key(self.PARTITION_KEY).eq(user_id),
            'ConsistentRead': True
        }
        response = self.table.query(**query_kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.query(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **query_kwargs
            )
            items.extend(response.get('Items', []))

        return [(item[self.SORT_KEY], self._item_to_record(item)) for item in items]

    def get(self, user_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(
                Key={self.PARTITION_KEY: user_id, self.SORT_KEY: event_id},
                ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Error reading event {event_id} for {user_id}: {e}")
            raise

        item = response.get('Item')
        if item is None:
            return None
        return self._item_to_record(item)

    def put(self, user_id: str, event_id: str, record: Dict[str, Any]) -> None:
        item = self._record_to_item(user_id, event_id, record)
        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing event {event_id} for {user_id}: {e}")
            raise

    def delete(self, user_id: str, event_id: str) -> None:
        try:
            self.table.delete_item(
                Key={self.PARTITION_KEY: user_id, self.SORT_KEY: event_id}
            )
        except ClientError as e:
            logger.error(f"Error deleting event {event_id} for {user_id}: {e}")
            raise

    def generate_key(self, user_id: str) -> str:
        return self._keys.generate()

    def close(self) -> None:
        """Stop every background poller."""
        with self._lock:
            pollers = list(self._pollers)
            self._pollers.clear()
        for poller in pollers:
            poller.cancel()
        logger.info(f"Closed DynamoDBEventStore for table: {self.table_name}")

    def _item_to_record(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert DynamoDB item to a plain record.

        Numbers come back as Decimal and are converted to int or float.
        """
        return _from_dynamodb(dict(item))

    def _record_to_item(
        self,
        user_id: str,
        event_id: str,
        record: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Convert a record to a DynamoDB item stored at (user_id, event_id).

        The key attributes always reflect the path the item is written to.
        """
        item = _to_dynamodb(dict(record))
        item[self.PARTITION_KEY] = user_id
        item[self.SORT_KEY] = event_id
        return item
