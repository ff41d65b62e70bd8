from src.domain.normalization import (
    detect_platform,
    extract_public_identifier,
    normalize_account_status,
    normalize_phone_number,
    normalize_profile_url,
    profile_match_key,
)


def test_linkedin_profile_url_normalization_contract():
    canonical = "https://www.linkedin.com/in/jdoe"
    assert normalize_profile_url("https://www.linkedin.com/in/jdoe/") == canonical
    assert normalize_profile_url("http://linkedin.com/in/jdoe") == canonical
    assert normalize_profile_url("linkedin.com/in/jdoe?x=1") == canonical
    assert normalize_profile_url("www.linkedin.com/in/jdoe#about") == canonical
    assert normalize_profile_url("https://www.linkedin.com/in/jdoe/details/experience/") == canonical


def test_profile_url_edge_cases():
    assert normalize_profile_url(None) is None
    assert normalize_profile_url("") is None
    assert normalize_profile_url("   ") is None
    assert normalize_profile_url("jdoe") == "jdoe"
    assert normalize_profile_url("https://example.com/jdoe") == "https://example.com/jdoe"
    assert normalize_profile_url("linkedin.com/in/?ref=x") is None
    assert normalize_profile_url("https://www.linkedin.com/in/") is None
    assert normalize_profile_url("https://www.linkedin.com/in//jdoe") == "https://www.linkedin.com/in//jdoe"
    assert normalize_profile_url("https://www.instagram.com/", "instagram") is None


def test_other_platform_profile_urls():
    assert normalize_profile_url("instagram.com/jane_doe/", "instagram") == "https://www.instagram.com/jane_doe"
    assert normalize_profile_url("https://fb.com/jane.doe", "facebook") == "https://www.facebook.com/jane.doe"
    assert normalize_profile_url("https://m.example/x", "whatsapp") == "https://m.example/x"


def test_identifier_helpers():
    assert profile_match_key("https://www.linkedin.com/in/jdoe") == "linkedin.com/in/jdoe"
    assert extract_public_identifier("https://www.linkedin.com/in/jane-doe-123/") == "jane-doe-123"
    assert extract_public_identifier("@jane", "instagram") == "jane"
    assert extract_public_identifier("jane-doe") == "jane-doe"
    assert extract_public_identifier("") is None
    assert detect_platform("https://www.linkedin.com/in/jdoe") == "linkedin"
    assert detect_platform("https://fb.com/jane") == "facebook"
    assert detect_platform("jdoe") is None


def test_phone_normalization_contract():
    assert normalize_phone_number("+1 (415) 555-0100") == "+14155550100"
    assert normalize_phone_number("415.555.0100") == "4155550100"
    assert normalize_phone_number("abc") is None
    assert normalize_phone_number("") is None
    assert normalize_phone_number(None) is None


def test_account_status_normalization_contract():
    assert normalize_account_status("OK") == "connected"
    assert normalize_account_status("ok") == "connected"
    assert normalize_account_status("CREATION_SUCCESS") == "connected"
    assert normalize_account_status("RECONNECTED") == "connected"
    assert normalize_account_status("SYNC_SUCCESS") == "connected"
    assert normalize_account_status("ERROR") == "stopped"
    assert normalize_account_status("STOPPED") == "stopped"
    assert normalize_account_status("CREDENTIALS") == "checkpoint"
    assert normalize_account_status("CONNECTING") == "connecting"
    assert normalize_account_status("DELETED") == "disconnected"
    assert normalize_account_status("FROBNICATED") == "unknown"
    assert normalize_account_status(None) == "unknown"


def test_account_status_heuristics_prefer_disconnected_over_connected():
    assert normalize_account_status("account disconnected by user") == "disconnected"
    assert normalize_account_status("sync stopped") == "disconnected"
    assert normalize_account_status("credential_expired") == "checkpoint"
    assert normalize_account_status("Connected via proxy") == "connected"
    assert normalize_account_status("still active") == "connected"
