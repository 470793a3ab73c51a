import os
import time
import uuid
from typing import Optional

from ..common.aws import ddb_resource
from ..common.config import settings
from ..domain.models import InboundMessage


class MessagesRepo:
    """Record of every prompt received, one item per inbound message.

    Item schema:
      - pk: "{channel}#{channel_id}"
      - sk: "{created_at}#{id}"
      - id, channel, channel_id, name, created_at, updated_at
    """

    def __init__(self, table_name: Optional[str] = None):
        self.table_name = table_name or os.getenv("DDB_TABLE_MESSAGES") or settings.messages_table
        self.table = ddb_resource().Table(self.table_name)

    def record_inbound(self, message: InboundMessage) -> dict:
        ts = int(time.time())
        msg_id = str(uuid.uuid4())
        channel = message.channel.value
        item = {
            "pk": f"{channel}#{message.from_}",
            "sk": f"{ts}#{msg_id}",
            "id": msg_id,
            "channel": channel,
            "channel_id": message.from_,
            "name": message.display_name or "",
            "created_at": ts,
            "updated_at": ts,
        }
        self.table.put_item(Item=item)
        return item
