"""SQS queue transport (aiobotocore) for scheduled-command messages."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

from aiobotocore.session import AioSession
from typing_extensions import Self

from ..exceptions import TransportDeliveryError
from ..ports.messaging import IQueueMessage, IQueueTransport

logger = logging.getLogger("chronicle.messaging")

# SQS caps per-message delay at 15 minutes.
MAX_DELAY_SECONDS = 900


class SQSConnectionManager:
    """One aiobotocore SQS client shared by every transport of a process.

    The client is opened on first use. Queue URLs are resolved once per
    queue name. Use as ``async with SQSConnectionManager(...) as sqs:`` or
    call :meth:`close` on shutdown.
    """

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        session: AioSession | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._session = session or AioSession()
        self._client_kwargs = {"region_name": region_name, **client_kwargs}
        self._opened: Any = None
        self._client: Any = None
        self._lock = asyncio.Lock()
        self._queue_urls: dict[str, str] = {}

    async def client(self) -> Any:
        async with self._lock:
            if self._client is None:
                opened = self._session.create_client("sqs", **self._client_kwargs)
                self._client = await opened.__aenter__()
                self._opened = opened
                logger.debug("Opened SQS client")
        return self._client

    async def queue_url(self, queue_name: str) -> str:
        if queue_name not in self._queue_urls:
            sqs = await self.client()
            try:
                response = await sqs.get_queue_url(QueueName=queue_name)
            except Exception as e:
                raise TransportDeliveryError(
                    f"Cannot resolve SQS queue '{queue_name}': {e}"
                ) from e
            self._queue_urls[queue_name] = str(response["QueueUrl"])
        return self._queue_urls[queue_name]

    async def close(self) -> None:
        opened, self._opened, self._client = self._opened, None, None
        if opened is not None:
            await opened.__aexit__(None, None, None)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


@dataclass
class SQSQueueMessage:
    """One SQS delivery; completing it deletes the message."""

    body: bytes
    message_id: str
    delivery_count: int
    receipt_handle: str
    queue_url: str
    client: Any = field(repr=False)

    async def complete(self) -> None:
        try:
            await self.client.delete_message(
                QueueUrl=self.queue_url, ReceiptHandle=self.receipt_handle
            )
        except Exception as e:
            raise TransportDeliveryError(
                f"Cannot complete SQS message: {e}", self.message_id
            ) from e


class SQSQueueTransport(IQueueTransport):
    """:class:`IQueueTransport` over one SQS queue.

    Receives long-poll with ``WaitTimeSeconds``; an uncompleted message
    reappears once ``visibility_timeout`` passes. On FIFO queues
    (``*.fifo``) messages are grouped by aggregate id and deduplicated by
    content, and per-message delays do not apply.
    """

    def __init__(
        self,
        connection: SQSConnectionManager,
        queue_name: str,
        *,
        visibility_timeout: int = 30,
    ) -> None:
        self._connection = connection
        self._queue_name = queue_name
        self._visibility_timeout = visibility_timeout

    @property
    def is_fifo(self) -> bool:
        return self._queue_name.endswith(".fifo")

    async def send(
        self,
        body: bytes,
        *,
        group_id: str | None = None,
        delay_seconds: int = 0,
    ) -> str:
        sqs, queue_url = await self._target()
        request: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MessageBody": body.decode("utf-8"),
        }
        if self.is_fifo:
            request["MessageGroupId"] = group_id or "default"
            request["MessageDeduplicationId"] = hashlib.sha256(body).hexdigest()
        elif delay_seconds > 0:
            request["DelaySeconds"] = min(delay_seconds, MAX_DELAY_SECONDS)
        try:
            response = await sqs.send_message(**request)
        except Exception as e:
            raise TransportDeliveryError(f"Cannot send SQS message: {e}") from e
        logger.debug("Sent message %s to %s", response["MessageId"], self._queue_name)
        return str(response["MessageId"])

    async def receive(
        self, *, max_messages: int = 10, wait_time_seconds: int = 0
    ) -> list[IQueueMessage]:
        sqs, queue_url = await self._target()
        try:
            response = await sqs.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=min(max_messages, 10),
                WaitTimeSeconds=wait_time_seconds,
                VisibilityTimeout=self._visibility_timeout,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except Exception as e:
            raise TransportDeliveryError(f"Cannot receive SQS messages: {e}") from e
        return [
            _to_message(raw, queue_url, sqs) for raw in response.get("Messages", [])
        ]

    async def _target(self) -> tuple[Any, str]:
        queue_url = await self._connection.queue_url(self._queue_name)
        return await self._connection.client(), queue_url


def _to_message(raw: dict[str, Any], queue_url: str, sqs: Any) -> SQSQueueMessage:
    attributes = raw.get("Attributes", {})
    return SQSQueueMessage(
        body=raw.get("Body", "").encode("utf-8"),
        message_id=raw["MessageId"],
        delivery_count=int(attributes.get("ApproximateReceiveCount", 1)),
        receipt_handle=raw["ReceiptHandle"],
        queue_url=queue_url,
        client=sqs,
    )
