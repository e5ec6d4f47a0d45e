"""
Tests for HTTP Spy Structural Comparison

Tests the JSON and XML diff functions used by structural expectations.
"""

import pytest

from httpspy.common import StructuralComparisonError
from httpspy.spy.compare import compare_json, compare_xml


class TestCompareJson:
    """Test JSON comparison."""

    def test_equal_documents(self):
        """Test equal documents have no differences."""
        assert compare_json('{"a": [1, {"b": null}]}', '{"a": [{"b": null}, 1]}') == []

    def test_different_value(self):
        """Test a changed value is reported with its path."""
        assert compare_json('{"a": 1}', '{"a": 2}') == ['$.a: Expected: 1 got: 2']

    def test_missing_field(self):
        """Test a missing field is reported."""
        assert compare_json('{"a": 1}', '{}') == ['$.a: Expected: 1 but none found']

    def test_unexpected_field(self):
        """Test an extra field is reported."""
        assert compare_json('{}', '{"b": true}') == ['$.b: Unexpected: true']

    def test_array_length(self):
        """Test array size differences are reported."""
        differences = compare_json('[1, 2]', '[1, 2, 3]')

        assert differences == ['$[]: Expected 2 values but got 3', '$[]: Unexpected: 3']

    def test_array_duplicates(self):
        """Test each actual element is paired at most once."""
        assert compare_json('[1, 1]', '[1, 2]') == [
            '$[]: Expected: 1 but none found',
            '$[]: Unexpected: 2',
        ]

    def test_booleans_are_not_numbers(self):
        """Test true does not equal 1."""
        assert compare_json('true', '1') == ['$: Expected: true got: 1']

    def test_numbers_compare_numerically(self):
        """Test 1 equals 1.0."""
        assert compare_json('1', '1.0') == []

    def test_type_change(self):
        """Test an object replaced by a scalar is reported."""
        assert compare_json('{"a": {"b": 1}}', '{"a": "x"}') == ['$.a: Expected: {"b": 1} got: "x"']

    def test_unparsable(self):
        """Test parse failures raise."""
        with pytest.raises(StructuralComparisonError) as exc_info:
            compare_json('{', '{}')

        assert exc_info.value.expected == '{'
        assert exc_info.value.actual == '{}'

    def test_none_is_unparsable(self):
        """Test None actual value raises."""
        with pytest.raises(StructuralComparisonError):
            compare_json('{}', None)


class TestCompareXml:
    """Test XML comparison."""

    def test_root_mismatch(self):
        """Test different root elements."""
        assert compare_xml('<a x="1"/>', '<b/>') == ['/: Expected root element <a> but was <b>']

    def test_attribute_value(self):
        """Test different attribute values."""
        assert compare_xml('<a x="1"/>', '<a x="2"/>') == ["/a/@x: Expected attribute '1' but was '2'"]

    def test_missing_and_unexpected_attributes(self):
        """Test attribute sets must be equal."""
        differences = compare_xml('<a x="1"/>', '<a y="1"/>')

        assert "/a/@x: Expected attribute '1' but none found" in differences
        assert "/a/@y: Unexpected attribute '1'" in differences

    def test_whitespace_normalized(self):
        """Test whitespace runs are ignored."""
        assert compare_xml('<a><b>hello world</b></a>', '<a>\n  <b>  hello\n world </b>\n</a>') == []

    def test_cdata_equals_text(self):
        """Test CDATA sections compare as text."""
        assert compare_xml('<a>x &lt; y</a>', '<a><![CDATA[x < y]]></a>') == []

    def test_namespace_prefixes_ignored(self):
        """Test prefixes do not matter, namespace URIs do."""
        assert compare_xml('<p:a xmlns:p="urn:x"/>', '<q:a xmlns:q="urn:x"/>') == []
        assert compare_xml('<p:a xmlns:p="urn:x"/>', '<p:a xmlns:p="urn:y"/>') != []

    def test_sibling_order_ignored(self):
        """Test children are paired by tag."""
        assert compare_xml('<a><b/><c/></a>', '<a><c/><b/></a>') == []

    def test_missing_and_unexpected_children(self):
        """Test child element differences."""
        assert compare_xml('<a><b/></a>', '<a><c/></a>') == [
            '/a/b[1]: Expected element <b> but none found',
            '/a/c: Unexpected element <c>',
        ]

    def test_malformed(self):
        """Test malformed documents raise."""
        with pytest.raises(StructuralComparisonError):
            compare_xml('<a>', '<a/>')
