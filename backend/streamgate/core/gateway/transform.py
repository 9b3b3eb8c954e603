"""
Request builders: validated route params -> Kinesis argument object.

One builder per operation, each doing explicit presence checks and
conditional field assignment. Optional fields are omitted when absent,
never sent as null or "". Builders are pure; they see only the params
already validated and coerced by request_response.validate_params.
"""

from collections.abc import Callable
from typing import Any

from streamgate.core.encoding import encode_data
from streamgate.core.gateway.routes import Route
from streamgate.core.operations import Operation
from streamgate.core.templates import render_request_template

DEFAULT_SHARD_ITERATOR_TYPE = "TRIM_HORIZON"


class TransformError(ValueError):
    """Raised when a request cannot be mapped to backend arguments."""

    pass


def _present(params: dict[str, Any], name: str) -> bool:
    return params.get(name) not in (None, "")


def build_get_records(params: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"ShardIterator": params["ShardIterator"]}
    if _present(params, "Limit"):
        out["Limit"] = params["Limit"]
    return out


def build_list_shards(params: dict[str, Any]) -> dict[str, Any]:
    # NextToken and StreamName are mutually exclusive for ListShards; the token wins.
    out: dict[str, Any] = {}
    if _present(params, "NextToken"):
        out["NextToken"] = params["NextToken"]
    elif _present(params, "StreamName"):
        out["StreamName"] = params["StreamName"]
    if _present(params, "MaxResults"):
        out["MaxResults"] = params["MaxResults"]
    return out


def build_list_streams(params: dict[str, Any]) -> dict[str, Any]:
    return {}


def build_describe_stream(params: dict[str, Any]) -> dict[str, Any]:
    return {"StreamName": params["name"]}


def build_put_record(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "StreamName": params["name"],
        "Data": encode_data(params["Data"]),
        "PartitionKey": params["PartitionKey"],
    }


def build_put_records(params: dict[str, Any]) -> dict[str, Any]:
    records: list[dict[str, Any]] = []
    for i, elem in enumerate(params.get("Records") or []):
        if not isinstance(elem, dict):
            raise TransformError(f"Records[{i}] must be an object")
        record: dict[str, Any] = {}
        if "Data" in elem:
            record["Data"] = encode_data(elem["Data"])
        if "PartitionKey" in elem:
            record["PartitionKey"] = elem["PartitionKey"]
        records.append(record)
    return {"StreamName": params["name"], "Records": records}


def build_get_shard_iterator(params: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {
        "StreamName": params["name"],
        "ShardId": params["ShardId"],
        "ShardIteratorType": params["ShardIteratorType"]
        if _present(params, "ShardIteratorType")
        else DEFAULT_SHARD_ITERATOR_TYPE,
    }
    if _present(params, "StartingSequenceNumber"):
        out["StartingSequenceNumber"] = params["StartingSequenceNumber"]
    if _present(params, "Timestamp"):
        out["Timestamp"] = params["Timestamp"]
    return out


BUILDERS: dict[Operation, Callable[[dict[str, Any]], dict[str, Any]]] = {
    Operation.GET_RECORDS: build_get_records,
    Operation.LIST_SHARDS: build_list_shards,
    Operation.LIST_STREAMS: build_list_streams,
    Operation.DESCRIBE_STREAM: build_describe_stream,
    Operation.PUT_RECORD: build_put_record,
    Operation.PUT_RECORDS: build_put_records,
    Operation.GET_SHARD_ITERATOR: build_get_shard_iterator,
}


def build_backend_request(
    route: Route,
    params: dict[str, Any],
    body: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Map validated params to the backend argument object for *route*.

    A route carrying a request-template override renders it instead of the
    built-in builder (raises TemplateRenderError on failure).
    """
    if route.request_template:
        return render_request_template(
            route.request_template,
            {"stream_name": params.get("name"), "body": body or {}, "params": params},
        )
    return BUILDERS[route.operation](params)
