"""
Layer descriptor (de)serialization.

A convolution layer descriptor is a structured record with the integer fields
`iWidth`, `iHeight`, `iDepth`, `kernelSize`, `oDepth` and two ordered lists of
floats, `weight` (length `oDepth * iDepth * kernelSize**2`) and `offset`
(length `oDepth`). Two file flavours are supported:

XML
---
<ConvolutionalLayer>
  <iWidth>3</iWidth> ... <oDepth>1</oDepth>
  <weight> ...leaf elements in document order, any nesting... </weight>
  <offset> <item>0.0</item> ... </offset>
</ConvolutionalLayer>

A leaf element may also carry several whitespace- or comma-separated values.

JSON
----
{"iWidth": 3, ..., "weight": [...], "offset": [...]}

`weight` may be flat or nested as [oDepth][iDepth][kernelSize][kernelSize].

Parsing only turns text into raw fields; every size and shape check is done by
`ConvolutionDescriptor`, so a mismatch surfaces as `ConfigurationError` before
any layer is built.
"""

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Mapping

from ...domain._descriptor import ConvolutionDescriptor
from ...domain._errors import ConfigurationError

ROOT_TAG = "ConvolutionalLayer"

_INT_FIELDS = (
    ("iWidth", "i_width"),
    ("iHeight", "i_height"),
    ("iDepth", "i_depth"),
    ("kernelSize", "kernel_size"),
    ("oDepth", "o_depth"),
)

_SEPARATORS = re.compile(r"[\s,]+")


# ---------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------


def _find_root(doc: ET.Element) -> ET.Element:
    if doc.tag == ROOT_TAG:
        return doc
    root = doc.find(f".//{ROOT_TAG}")
    if root is None:
        raise ConfigurationError(
            ROOT_TAG, "root element not found", expected=ROOT_TAG, actual=doc.tag
        )
    return root


def _xml_int(root: ET.Element, name: str) -> int:
    node = root.find(name)
    if node is None or node.text is None or not node.text.strip():
        raise ConfigurationError(name, "missing element")
    try:
        return int(node.text.strip())
    except ValueError:
        raise ConfigurationError(
            name, "not an integer", expected="int", actual=node.text.strip()
        ) from None


def _xml_floats(root: ET.Element, name: str) -> list[float]:
    node = root.find(name)
    if node is None:
        raise ConfigurationError(name, "missing element")

    leaves = [el for el in node.iter() if len(el) == 0]
    values: list[float] = []
    for leaf in leaves:
        for token in _SEPARATORS.split((leaf.text or "").strip()):
            if not token:
                continue
            try:
                values.append(float(token))
            except ValueError:
                raise ConfigurationError(
                    name, "not a number", expected="float", actual=token
                ) from None
    return values


def parse_descriptor_xml(text: str) -> ConvolutionDescriptor:
    """
    Parse an XML layer descriptor.

    Raises
    ------
    ConfigurationError
        On malformed XML, missing or non-numeric fields, or size mismatches.
    """
    try:
        doc = ET.fromstring(text)
    except ET.ParseError as e:
        raise ConfigurationError("xml", f"malformed document ({e})") from e

    root = _find_root(doc)
    ints = {attr: _xml_int(root, tag) for tag, attr in _INT_FIELDS}
    return ConvolutionDescriptor(
        **ints,
        weight=_xml_floats(root, "weight"),
        offset=_xml_floats(root, "offset"),
    )


def load_descriptor_xml(path: str | Path) -> ConvolutionDescriptor:
    return parse_descriptor_xml(Path(path).read_text(encoding="utf-8"))


def descriptor_to_xml(desc: ConvolutionDescriptor) -> str:
    """Serialize a descriptor to the XML flavour (one `<item>` per value)."""
    root = ET.Element(ROOT_TAG)
    for tag, attr in _INT_FIELDS:
        ET.SubElement(root, tag).text = str(getattr(desc, attr))
    for tag, values in (("weight", desc.weight), ("offset", desc.offset)):
        node = ET.SubElement(root, tag)
        for v in values:
            ET.SubElement(node, "item").text = repr(float(v))
    ET.indent(root)
    return ET.tostring(root, encoding="unicode") + "\n"


def save_descriptor_xml(desc: ConvolutionDescriptor, path: str | Path) -> None:
    Path(path).write_text(descriptor_to_xml(desc), encoding="utf-8")


# ---------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------


def descriptor_to_dict(desc: ConvolutionDescriptor) -> dict[str, Any]:
    out: dict[str, Any] = {tag: getattr(desc, attr) for tag, attr in _INT_FIELDS}
    out["weight"] = [float(v) for v in desc.weight]
    out["offset"] = [float(v) for v in desc.offset]
    return out


def descriptor_from_dict(record: Mapping[str, Any]) -> ConvolutionDescriptor:
    """
    Build a descriptor from a JSON-style record.

    Raises
    ------
    ConfigurationError
        If a field is missing or invalid.
    """
    if not isinstance(record, Mapping):
        raise ConfigurationError(
            "record", "must be a mapping", actual=type(record).__name__
        )
    missing = [
        tag for tag in [t for t, _ in _INT_FIELDS] + ["weight", "offset"]
        if tag not in record
    ]
    if missing:
        raise ConfigurationError(missing[0], "missing field", actual=sorted(record))

    ints = {attr: record[tag] for tag, attr in _INT_FIELDS}
    return ConvolutionDescriptor(
        **ints, weight=record["weight"], offset=record["offset"]
    )


def load_descriptor_json(path: str | Path) -> ConvolutionDescriptor:
    try:
        record = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError("json", f"malformed document ({e})") from e
    return descriptor_from_dict(record)


def save_descriptor_json(desc: ConvolutionDescriptor, path: str | Path) -> None:
    Path(path).write_text(json.dumps(descriptor_to_dict(desc), indent=2), encoding="utf-8")


def load_descriptor(path: str | Path) -> ConvolutionDescriptor:
    """
    Load a descriptor, choosing the flavour from the file suffix.

    Raises
    ------
    ConfigurationError
        If the suffix is neither `.xml` nor `.json`, or the content is invalid.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".xml":
        return load_descriptor_xml(p)
    if suffix == ".json":
        return load_descriptor_json(p)
    raise ConfigurationError(
        "path",
        "unsupported descriptor format",
        expected=(".xml", ".json"),
        actual=suffix,
    )
