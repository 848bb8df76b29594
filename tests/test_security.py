import pytest

from chat_relay.security import OriginGuard


def test_bare_host_matches_both_schemes():
    guard = OriginGuard(["example.com"])
    assert guard.is_allowed("https://example.com")
    assert guard.is_allowed("http://example.com")
    assert not guard.is_allowed("https://evil.com")
    assert not guard.is_allowed(None)


def test_match_is_case_insensitive():
    guard = OriginGuard(["Example.COM"])
    assert guard.is_allowed("HTTPS://example.com")


def test_entry_with_scheme_matches_exactly():
    guard = OriginGuard(["https://example.com"])
    assert guard.is_allowed("https://example.com")
    assert not guard.is_allowed("http://example.com")


def test_no_suffix_or_port_matching():
    guard = OriginGuard(["example.com"])
    assert not guard.is_allowed("https://sub.example.com")
    assert not guard.is_allowed("https://example.com:8443")
    assert not guard.is_allowed("example.com")


@pytest.mark.parametrize("raw", [None, "", "   ", "*", " * "])
def test_allow_all_settings(raw):
    guard = OriginGuard.from_setting(raw)
    assert guard.allow_all
    assert guard.is_allowed(None)
    assert guard.is_allowed("https://anything.example")


def test_from_setting_splits_and_trims():
    guard = OriginGuard.from_setting(" example.com , ,https://chat.example.org ")
    assert guard.allowed == ("example.com", "https://chat.example.org")
    assert not guard.allow_all


def test_separator_only_setting_allows_all():
    assert OriginGuard.from_setting(" , ").allow_all
