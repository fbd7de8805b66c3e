import json
import os
import tempfile
import unittest

import numpy as np

from clconv.domain import ConfigurationError, ConvolutionDescriptor
from clconv.infrastructure.descriptor import (
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

_HEADER = (
    "<iWidth>3</iWidth><iHeight>3</iHeight><iDepth>1</iDepth>"
    "<kernelSize>2</kernelSize><oDepth>2</oDepth>"
)


def _xml(weight: str, offset: str, header: str = _HEADER) -> str:
    return (
        f"<ConvolutionalLayer>{header}"
        f"<weight>{weight}</weight><offset>{offset}</offset>"
        "</ConvolutionalLayer>"
    )


class TestParseDescriptorXml(unittest.TestCase):
    def test_flat_items(self):
        items = "".join(f"<item>{v}</item>" for v in range(8))
        d = parse_descriptor_xml(_xml(items, "<item>0.5</item><item>-1.5</item>"))

        self.assertEqual(
            (d.i_width, d.i_height, d.i_depth, d.kernel_size, d.o_depth),
            (3, 3, 1, 2, 2),
        )
        np.testing.assert_array_equal(d.weight, np.arange(8, dtype=np.float32))
        np.testing.assert_array_equal(d.offset, [0.5, -1.5])

    def test_nested_weight_is_read_in_document_order(self):
        weight = (
            "<o><i><row><v>0</v><v>1</v></row><row><v>2</v><v>3</v></row></i></o>"
            "<o><i><row><v>4</v><v>5</v></row><row><v>6</v><v>7</v></row></i></o>"
        )
        d = parse_descriptor_xml(_xml(weight, "<b>0</b><b>0</b>"))
        np.testing.assert_array_equal(d.weight, np.arange(8, dtype=np.float32))

    def test_separated_values_in_one_leaf(self):
        d = parse_descriptor_xml(_xml("<row>0 1, 2 3</row><row>4,5,6,7</row>", "<b>1 2</b>"))
        np.testing.assert_array_equal(d.weight, np.arange(8, dtype=np.float32))
        np.testing.assert_array_equal(d.offset, [1.0, 2.0])

    def test_root_may_be_nested(self):
        items = "".join("<item>0</item>" for _ in range(8))
        doc = f"<network>{_xml(items, '<item>0</item><item>0</item>')}</network>"
        self.assertEqual(parse_descriptor_xml(doc).o_depth, 2)

    def test_malformed_xml(self):
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml("<ConvolutionalLayer><iWidth>3</ConvolutionalLayer>")
        self.assertEqual(ctx.exception.field, "xml")

    def test_missing_root(self):
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml("<PoolingLayer/>")
        self.assertEqual(ctx.exception.field, "ConvolutionalLayer")

    def test_missing_integer_field(self):
        header = _HEADER.replace("<oDepth>2</oDepth>", "")
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(_xml("<item>0</item>", "<item>0</item>", header))
        self.assertEqual(ctx.exception.field, "oDepth")

    def test_non_integer_field(self):
        header = _HEADER.replace("<iWidth>3</iWidth>", "<iWidth>three</iWidth>")
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(_xml("<item>0</item>", "<item>0</item>", header))
        self.assertEqual(ctx.exception.field, "iWidth")

    def test_non_numeric_weight(self):
        items = "".join("<item>x</item>" for _ in range(8))
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(_xml(items, "<item>0</item><item>0</item>"))
        self.assertEqual(ctx.exception.field, "weight")

    def test_missing_offset_element(self):
        items = "".join("<item>0</item>" for _ in range(8))
        doc = f"<ConvolutionalLayer>{_HEADER}<weight>{items}</weight></ConvolutionalLayer>"
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(doc)
        self.assertEqual(ctx.exception.field, "offset")

    def test_weight_count_mismatch(self):
        items = "".join("<item>0</item>" for _ in range(7))
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(_xml(items, "<item>0</item><item>0</item>"))
        self.assertEqual(ctx.exception.field, "weight")
        self.assertEqual((ctx.exception.expected, ctx.exception.actual), (8, 7))

    def test_offset_count_mismatch(self):
        items = "".join("<item>0</item>" for _ in range(8))
        with self.assertRaises(ConfigurationError) as ctx:
            parse_descriptor_xml(_xml(items, "<item>0</item>"))
        self.assertEqual(ctx.exception.field, "offset")


class TestDescriptorFiles(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        rng = np.random.default_rng(0)
        self.desc = ConvolutionDescriptor(
            i_width=5,
            i_height=4,
            i_depth=2,
            kernel_size=3,
            o_depth=2,
            weight=rng.standard_normal(36).astype(np.float32),
            offset=rng.standard_normal(2).astype(np.float32),
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _assert_same(self, a: ConvolutionDescriptor, b: ConvolutionDescriptor) -> None:
        self.assertEqual(a.input_shape, b.input_shape)
        self.assertEqual(a.output_shape, b.output_shape)
        np.testing.assert_array_equal(a.weight, b.weight)
        np.testing.assert_array_equal(a.offset, b.offset)

    def test_xml_file_preserves_float32_values(self):
        path = os.path.join(self.tmp, "layer.xml")
        save_descriptor_xml(self.desc, path)
        self._assert_same(load_descriptor_xml(path), self.desc)
        self._assert_same(load_descriptor(path), self.desc)

    def test_xml_text_layout(self):
        text = descriptor_to_xml(self.desc)
        self.assertTrue(text.startswith("<ConvolutionalLayer>"))
        self.assertEqual(text.count("<item>"), 36 + 2)
        self.assertIn("<kernelSize>3</kernelSize>", text)

    def test_json_file_preserves_float32_values(self):
        path = os.path.join(self.tmp, "layer.json")
        save_descriptor_json(self.desc, path)
        with open(path, encoding="utf-8") as f:
            record = json.load(f)
        self.assertEqual(record["kernelSize"], 3)
        self.assertEqual(len(record["weight"]), 36)
        self._assert_same(load_descriptor_json(path), self.desc)
        self._assert_same(load_descriptor(path), self.desc)

    def test_dict_accepts_nested_weight(self):
        record = descriptor_to_dict(self.desc)
        record["weight"] = np.asarray(record["weight"]).reshape(2, 2, 3, 3).tolist()
        self._assert_same(descriptor_from_dict(record), self.desc)

    def test_dict_missing_field(self):
        record = descriptor_to_dict(self.desc)
        del record["offset"]
        with self.assertRaises(ConfigurationError) as ctx:
            descriptor_from_dict(record)
        self.assertEqual(ctx.exception.field, "offset")

    def test_dict_requires_mapping(self):
        with self.assertRaises(ConfigurationError):
            descriptor_from_dict([1, 2, 3])  # type: ignore[arg-type]

    def test_malformed_json(self):
        path = os.path.join(self.tmp, "layer.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertRaises(ConfigurationError) as ctx:
            load_descriptor(path)
        self.assertEqual(ctx.exception.field, "json")

    def test_unknown_suffix(self):
        path = os.path.join(self.tmp, "layer.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("iWidth: 3\n")
        with self.assertRaises(ConfigurationError) as ctx:
            load_descriptor(path)
        self.assertEqual(ctx.exception.field, "path")


if __name__ == "__main__":
    unittest.main()
