"""Tests for the capability header model."""

import pytest

from fconfig.build.header import CapabilityHeader, c_string_literal, render_value


class TestValues:
    def test_render_value(self):
        assert render_value(1) == "1"
        assert render_value(64) == "64"
        assert render_value(True) == "1"
        assert render_value(False) == "0"
        assert render_value("gnu") == '"gnu"'

    def test_string_literal_escapes(self):
        assert c_string_literal('a"b\\c\nd') == '"a\\"b\\\\c\\nd"'


class TestCapabilityHeader:
    def test_mapping_behavior(self):
        header = CapabilityHeader((("HAVE_A", 1), ("SIZE", 64)))
        assert "HAVE_A" in header
        assert "HAVE_B" not in header
        assert header["SIZE"] == 64
        assert list(header) == ["HAVE_A", "SIZE"]
        assert len(header) == 2
        with pytest.raises(KeyError):
            header["HAVE_B"]

    def test_duplicate_symbol_rejected(self):
        with pytest.raises(ValueError, match="Duplicate header symbol"):
            CapabilityHeader((("HAVE_A", 1), ("HAVE_A", 0)))

    def test_render(self):
        header = CapabilityHeader((("HAVE_X", 1), ("NAME", 'v"q')), undefined=("HAVE_Y",))
        assert header.render() == (
            "/* Generated by fconfig. Do not edit. */\n"
            "#ifndef FCONFIG_CONFIG_H\n"
            "#define FCONFIG_CONFIG_H\n"
            "\n"
            "#define HAVE_X 1\n"
            '#define NAME "v\\"q"\n'
            "\n"
            "/* #undef HAVE_Y */\n"
            "\n"
            "#endif /* FCONFIG_CONFIG_H */\n"
        )

    def test_render_without_undefined(self):
        text = CapabilityHeader((("HAVE_X", 1),)).render()
        assert "#undef" not in text
        assert text.endswith("#define HAVE_X 1\n\n#endif /* FCONFIG_CONFIG_H */\n")

    def test_to_dict(self):
        header = CapabilityHeader((("HAVE_X", 1),), undefined=("HAVE_Y",))
        assert header.to_dict() == {"defines": {"HAVE_X": 1}, "undefined": ["HAVE_Y"]}
