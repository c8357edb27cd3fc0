"""
Unit tests for media type -> extension class resolution.
"""

import pytest

from app.services.media_type import (
    ExtensionClass,
    first_extension,
    resolve_extension_class,
)


class TestResolveExtensionClass:
    """resolve_extension_class() maps declared media types to strategies."""

    @pytest.mark.parametrize(
        "media_type",
        ["application/gzip", "application/x-gzip", "application/gzip-compressed"],
    )
    def test_gzip_types(self, media_type):
        assert resolve_extension_class(media_type) == ExtensionClass.GZIP

    @pytest.mark.parametrize(
        "media_type",
        ["application/zip", "application/x-zip-compressed", "application/x-zip"],
    )
    def test_zip_types(self, media_type):
        assert resolve_extension_class(media_type) == ExtensionClass.ZIP

    @pytest.mark.parametrize("media_type", ["text/xml", "application/xml"])
    def test_xml_types(self, media_type):
        assert resolve_extension_class(media_type) == ExtensionClass.XML

    def test_parameters_and_case_are_ignored(self):
        assert (
            resolve_extension_class('Application/GZIP; name="report.xml.gz"')
            == ExtensionClass.GZIP
        )

    @pytest.mark.parametrize(
        "media_type",
        ["application/pdf", "image/png", "text/plain", "application/x-bogus-type"],
    )
    def test_types_without_strategy_are_unknown(self, media_type):
        assert resolve_extension_class(media_type) == ExtensionClass.UNKNOWN

    @pytest.mark.parametrize("media_type", [None, "", "   "])
    def test_missing_media_type_is_unknown(self, media_type):
        assert resolve_extension_class(media_type) == ExtensionClass.UNKNOWN


class TestFirstExtension:
    """first_extension() takes the first registered extension."""

    def test_first_of_several_extensions_wins(self):
        assert first_extension("application/xml") == "xml"

    def test_unregistered_type_returns_empty_string(self):
        assert first_extension("application/x-bogus-type") == ""

    def test_falls_back_to_mimetypes_registry(self):
        assert first_extension("application/pdf") == "pdf"
