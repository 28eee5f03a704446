"""Protobuf message classes for the serialized sketch.

The schema mirrors the public DDSketch ``.proto`` definition. Message classes
are assembled at import time from a ``FileDescriptorProto`` registered in a
private descriptor pool, so no generated ``_pb2`` module (and no ``protoc``
step) is involved. Scalars are declared proto2 ``optional`` so the decoder can
tell an absent field from a zero value; the bytes on the wire are the same as
those of the proto3 schema.

Layout::

    DDSketch      mapping=1, positiveValues=2, negativeValues=3, zeroCount=4
    IndexMapping  gamma=1, indexOffset=2, interpolation=3
    Store         binCounts=1 (map<sint32, double>),
                  contiguousBinCounts=2 (packed double),
                  contiguousBinIndexOffset=3 (sint32)
"""
from __future__ import annotations

from google.protobuf import descriptor_pb2
from google.protobuf import descriptor_pool
from google.protobuf import message_factory

_PACKAGE = "dd_sketch"
_FIELD = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name, number, field_type, label=_FIELD.LABEL_OPTIONAL, type_name=None):
    field = message.field.add()
    field.name = name
    field.number = number
    field.type = field_type
    field.label = label
    if type_name is not None:
        field.type_name = f".{_PACKAGE}.{type_name}"
    return field


def _file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto()
    proto.name = "dd_sketch/ddsketch.proto"
    proto.package = _PACKAGE
    proto.syntax = "proto2"

    mapping = proto.message_type.add()
    mapping.name = "IndexMapping"
    _add_field(mapping, "gamma", 1, _FIELD.TYPE_DOUBLE)
    _add_field(mapping, "indexOffset", 2, _FIELD.TYPE_DOUBLE)
    # Varint-encoded like the upstream enum; the tag is validated by the decoder.
    _add_field(mapping, "interpolation", 3, _FIELD.TYPE_INT32)

    store = proto.message_type.add()
    store.name = "Store"
    entry = store.nested_type.add()
    entry.name = "BinCountsEntry"
    entry.options.map_entry = True
    _add_field(entry, "key", 1, _FIELD.TYPE_SINT32)
    _add_field(entry, "value", 2, _FIELD.TYPE_DOUBLE)
    _add_field(store, "binCounts", 1, _FIELD.TYPE_MESSAGE, _FIELD.LABEL_REPEATED, "Store.BinCountsEntry")
    counts = _add_field(store, "contiguousBinCounts", 2, _FIELD.TYPE_DOUBLE, _FIELD.LABEL_REPEATED)
    counts.options.packed = True
    _add_field(store, "contiguousBinIndexOffset", 3, _FIELD.TYPE_SINT32)

    sketch = proto.message_type.add()
    sketch.name = "DDSketch"
    _add_field(sketch, "mapping", 1, _FIELD.TYPE_MESSAGE, type_name="IndexMapping")
    _add_field(sketch, "positiveValues", 2, _FIELD.TYPE_MESSAGE, type_name="Store")
    _add_field(sketch, "negativeValues", 3, _FIELD.TYPE_MESSAGE, type_name="Store")
    _add_field(sketch, "zeroCount", 4, _FIELD.TYPE_DOUBLE)
    return proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_file_descriptor().SerializeToString())


def _message_class(name: str):
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


IndexMappingProto = _message_class("IndexMapping")
StoreProto = _message_class("Store")
DDSketchProto = _message_class("DDSketch")

__all__ = ["DDSketchProto", "IndexMappingProto", "StoreProto"]
