"""
Kinesis operations exposed through gateway routes.
"""

from enum import Enum


class Operation(str, Enum):
    """Backend capability; the value is the Kinesis API action name."""

    LIST_STREAMS = "ListStreams"
    DESCRIBE_STREAM = "DescribeStream"
    LIST_SHARDS = "ListShards"
    GET_RECORDS = "GetRecords"
    GET_SHARD_ITERATOR = "GetShardIterator"
    PUT_RECORD = "PutRecord"
    PUT_RECORDS = "PutRecords"

    @property
    def action(self) -> str:
        """IAM action name, e.g. kinesis:PutRecord."""
        return f"kinesis:{self.value}"

    @property
    def target(self) -> str:
        """X-Amz-Target header value for the Kinesis JSON API."""
        return f"Kinesis_20131202.{self.value}"

    @property
    def flag_name(self) -> str:
        """GatewayConfig field that enables this operation."""
        return "enable_" + "".join(
            ("_" + c.lower()) if c.isupper() else c for c in self.value
        ).lstrip("_")
