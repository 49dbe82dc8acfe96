# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""JSON and XML serialization of model instances."""

from fhirmeta.codec.json_codec import decode_json, encode_json
from fhirmeta.codec.tree import DecodeError, DecodeResult, decode_tree, encode_tree
from fhirmeta.codec.xml_codec import decode_xml, encode_xml

__all__ = [
    "DecodeError",
    "DecodeResult",
    "decode_tree",
    "encode_tree",
    "decode_json",
    "encode_json",
    "decode_xml",
    "encode_xml",
]
