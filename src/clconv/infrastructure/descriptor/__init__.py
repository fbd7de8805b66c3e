from ._descriptor_io import (
    descriptor_from_dict,
    descriptor_to_dict,
    descriptor_to_xml,
    load_descriptor,
    load_descriptor_json,
    load_descriptor_xml,
    parse_descriptor_xml,
    save_descriptor_json,
    save_descriptor_xml,
)

__all__ = [
    "descriptor_from_dict",
    "descriptor_to_dict",
    "descriptor_to_xml",
    "load_descriptor",
    "load_descriptor_json",
    "load_descriptor_xml",
    "parse_descriptor_xml",
    "save_descriptor_json",
    "save_descriptor_xml",
]
