"""Client module - RPC/HTTP channels, file service and transfers."""

from moonfiles.client.events import EventStream, Subscription
from moonfiles.client.http import HostHttpClient
from moonfiles.client.rpc import JsonRpcClient, RpcTransport
from moonfiles.client.service import FileService, HostSession, HostSessionRegistry
from moonfiles.client.transfers import TransferPipeline

__all__ = [
    "EventStream",
    "FileService",
    "HostHttpClient",
    "HostSession",
    "HostSessionRegistry",
    "JsonRpcClient",
    "RpcTransport",
    "Subscription",
    "TransferPipeline",
]
