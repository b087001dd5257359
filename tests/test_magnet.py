import pytest

from torwatch.errors import ValidationError
from torwatch.magnet import extract_display_name, extract_info_hash, is_valid_magnet_uri, validate_magnet_uri


@pytest.mark.parametrize(
    "uri,expected",
    [
        ("magnet:?xt=urn:btih:ABC123&dn=Foo", True),
        ("MAGNET:?XT=URN:BTIH:abc", True),
        ("http://example.com", False),
        ("", False),
        ("   ", False),
        ("magnet:?dn=Foo", False),
        ("xt=urn:btih:abc", False),
    ],
)
def test_is_valid_magnet_uri(uri, expected):
    assert is_valid_magnet_uri(uri) is expected


def test_extract_display_name():
    assert extract_display_name("magnet:?xt=urn:btih:ABC&dn=My%20File&tr=x") == "My File"


def test_extract_display_name_plus_and_utf8():
    assert extract_display_name("magnet:?xt=urn:btih:ABC&DN=Caf%C3%A9+Live") == "Café Live"


def test_extract_display_name_to_end():
    assert extract_display_name("magnet:?xt=urn:btih:ABC&dn=Last") == "Last"


def test_extract_display_name_absent():
    assert extract_display_name("magnet:?xt=urn:btih:ABC&tr=x") is None
    # dn as the first parameter has no leading '&'
    assert extract_display_name("magnet:?dn=Foo&xt=urn:btih:ABC") is None


@pytest.mark.parametrize("raw", ["Bad%2", "Bad%zzName", "%FF%FE"])
def test_extract_display_name_malformed(raw):
    assert extract_display_name(f"magnet:?xt=urn:btih:ABC&dn={raw}&tr=x") is None


def test_extract_info_hash():
    assert extract_info_hash("magnet:?xt=urn:btih:ABCDEF&dn=x") == "abcdef"
    assert extract_info_hash("magnet:?dn=x") is None


def test_validate_magnet_uri():
    assert validate_magnet_uri("  magnet:?xt=urn:btih:ABC ") == "magnet:?xt=urn:btih:ABC"
    with pytest.raises(ValidationError):
        validate_magnet_uri("")
    with pytest.raises(ValidationError):
        validate_magnet_uri("http://example.com/file.torrent")
