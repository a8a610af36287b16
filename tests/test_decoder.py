"""
Tests for the encoded record decoder
"""
import pytest

from reconciliation.decoder import collect_markers, decode, decode_deep, is_encoded_record
from reconciliation.models import UnparsedArrayMarker


class TestDecode:
    """Test single record decoding"""

    def test_simple_record(self):
        """Test typed values in a flat record"""
        assert decode("@{name=Foo; count=3; active=True}") == {
            "name": "Foo",
            "count": 3,
            "active": True,
        }

    def test_nested_record(self):
        """Test a record nested inside a record"""
        assert decode("@{outer=@{inner=5}}") == {"outer": {"inner": 5}}

    def test_nested_record_with_several_fields(self):
        """Test nested records keep their own pairs"""
        value = "@{usage=Shared; owner=@{name=Lab; floor=2}; catalog=Curriculum}"
        assert decode(value) == {
            "usage": "Shared",
            "owner": {"name": "Lab", "floor": 2},
            "catalog": "Curriculum",
        }

    def test_value_coercion(self):
        """Test every coercion rule"""
        result = decode("@{empty=; no=False; ratio=1.5; version=119.0.1; text=hello world}")
        assert result["empty"] == ""
        assert result["no"] is False
        assert result["ratio"] == 1.5
        assert result["version"] == "119.0.1"
        assert result["text"] == "hello world"

    def test_lowercase_booleans_stay_strings(self):
        """Test only the literal True/False spelling becomes a boolean"""
        assert decode("@{flag=true}") == {"flag": "true"}

    def test_value_containing_equals(self):
        """Test values split on the first equals sign only"""
        assert decode("@{query=a=b=c}") == {"query": "a=b=c"}

    def test_record_prefix_inside_plain_value(self):
        """Test '@{' in the middle of a value does not swallow later pairs"""
        result = decode("@{a=x; path=C:\\@{weird; b=2}")
        assert result["a"] == "x"
        assert result["path"] == "C:\\@{weird"
        assert result["b"] == 2

    def test_nested_record_after_spaced_equals(self):
        """Test a nested record still opens after '= '"""
        assert decode("@{outer= @{inner=5}; next=1}") == {"outer": {"inner": 5}, "next": 1}

    def test_array_marker(self):
        """Test typed arrays are kept as flagged placeholders"""
        result = decode("@{tags=System.Object[]; names=System.String[]}")
        assert result["tags"] == UnparsedArrayMarker(raw="System.Object[]")
        assert isinstance(result["names"], UnparsedArrayMarker)

    def test_empty_record(self):
        """Test an empty record decodes to an empty dict"""
        assert decode("@{}") == {}
        assert decode("@{   }") == {}

    def test_malformed_pairs_are_skipped(self):
        """Test pairs without '=' are dropped"""
        assert decode("@{garbage; name=Foo; =orphan}") == {"name": "Foo"}

    @pytest.mark.parametrize("value", [
        "plain text",
        "",
        "@{unterminated",
        "prefix @{a=1}",
        "{a=1}",
    ])
    def test_non_record_strings_pass_through(self, value):
        """Test strings that are not wrapped records come back unchanged"""
        assert decode(value) == value

    @pytest.mark.parametrize("value", [42, 1.5, True, None, ["@{a=1}"], {"a": 1}])
    def test_non_strings_pass_through(self, value):
        """Test non-string values come back unchanged"""
        assert decode(value) == value

    def test_is_encoded_record(self):
        """Test record detection"""
        assert is_encoded_record("@{a=1}") is True
        assert is_encoded_record("@{a=1") is False
        assert is_encoded_record(None) is False


class TestDecodeDeep:
    """Test recursive payload decoding"""

    def test_decodes_string_leaves(self):
        """Test records inside dicts and lists are decoded"""
        payload = {
            "serialNumber": "A1",
            "modules": {
                "inventory": "@{usage=Assigned; catalog=Staff}",
                "applications": [{"name": "7-Zip", "meta": "@{size=12}"}],
            },
        }
        result = decode_deep(payload)
        assert result["serialNumber"] == "A1"
        assert result["modules"]["inventory"] == {"usage": "Assigned", "catalog": "Staff"}
        assert result["modules"]["applications"][0]["meta"] == {"size": 12}

    def test_passthrough_keys_are_not_walked(self):
        """Test native lists under passthrough keys are left alone"""
        events = ["@{kind=install}"]
        result = decode_deep({"events": events, "other": ["@{kind=install}"]})
        assert result["events"] is events
        assert result["other"] == [{"kind": "install"}]

    def test_custom_passthrough_keys(self):
        """Test the passthrough set is configurable"""
        result = decode_deep({"events": ["@{a=1}"]}, passthrough_keys=())
        assert result["events"] == [{"a": 1}]

    def test_collect_markers(self):
        """Test degraded values can be counted after decoding"""
        result = decode_deep([{"m": "@{a=System.Object[]; b=@{c=System.Int32[]}}"}, "text"])
        markers = list(collect_markers(result))
        assert len(markers) == 2
        assert {marker.raw for marker in markers} == {"System.Object[]", "System.Int32[]"}
