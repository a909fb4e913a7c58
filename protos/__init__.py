"""Protobuf messages for the worker and orchestrator gRPC contracts.

worker.proto and orchestrator.proto in this directory describe the wire
contract. The message classes below are built from the same definitions at
import time, so the package works without a protoc/grpc_tools build step.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FIELD = descriptor_pb2.FieldDescriptorProto

# message name -> ordered (field name, field type); field numbers start at 1
_Messages = Dict[str, List[Tuple[str, int]]]
# service name -> (method name, input message, output message)
_Services = Dict[str, List[Tuple[str, str, str]]]

_WORKER_MESSAGES: _Messages = {
    "WorkerRequest": [("payload", _FIELD.TYPE_STRING)],
    "WorkerResponse": [("success", _FIELD.TYPE_BOOL)],
}
_WORKER_SERVICES: _Services = {
    "WorkerService": [("PerformTask", "WorkerRequest", "WorkerResponse")],
}

_ORCHESTRATOR_MESSAGES: _Messages = {
    "PlaylistSegue": [
        ("slug", _FIELD.TYPE_STRING),
        ("operation", _FIELD.TYPE_STRING),
        ("output", _FIELD.TYPE_STRING),
    ],
    "PlaylistSegueResponse": [],
}
_ORCHESTRATOR_SERVICES: _Services = {
    "OrchestratorService": [("SeguePlaylist", "PlaylistSegue", "PlaylistSegueResponse")],
}


def _file_proto(
    name: str, package: str, messages: _Messages, services: _Services
) -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(name=name, package=package, syntax="proto3")
    for msg_name, fields in messages.items():
        msg = proto.message_type.add(name=msg_name)
        for number, (field_name, field_type) in enumerate(fields, start=1):
            msg.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_FIELD.LABEL_OPTIONAL,
            )
    for svc_name, methods in services.items():
        svc = proto.service.add(name=svc_name)
        for method_name, input_type, output_type in methods:
            svc.method.add(
                name=method_name,
                input_type=f".{package}.{input_type}",
                output_type=f".{package}.{output_type}",
            )
    return proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(
    _file_proto("worker.proto", "worker", _WORKER_MESSAGES, _WORKER_SERVICES).SerializeToString()
)
_POOL.AddSerializedFile(
    _file_proto(
        "orchestrator.proto", "orchestrator", _ORCHESTRATOR_MESSAGES, _ORCHESTRATOR_SERVICES
    ).SerializeToString()
)


def _message(full_name: str) -> type:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(full_name))


WorkerRequest = _message("worker.WorkerRequest")
WorkerResponse = _message("worker.WorkerResponse")
PlaylistSegue = _message("orchestrator.PlaylistSegue")
PlaylistSegueResponse = _message("orchestrator.PlaylistSegueResponse")

WORKER_SERVICE = "worker.WorkerService"
PERFORM_TASK_METHOD = f"/{WORKER_SERVICE}/PerformTask"
ORCHESTRATOR_SERVICE = "orchestrator.OrchestratorService"
SEGUE_PLAYLIST_METHOD = f"/{ORCHESTRATOR_SERVICE}/SeguePlaylist"

__all__ = [
    "WorkerRequest",
    "WorkerResponse",
    "PlaylistSegue",
    "PlaylistSegueResponse",
    "WORKER_SERVICE",
    "PERFORM_TASK_METHOD",
    "ORCHESTRATOR_SERVICE",
    "SEGUE_PLAYLIST_METHOD",
]
