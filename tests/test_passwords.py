from movie_rec import passwords


def test_hash_and_verify_round_trip():
    stored = passwords.hash_password("hunter22", iterations=1000)

    assert stored.startswith("$HASH$1000$")
    assert passwords.verify_password("hunter22", stored)
    assert not passwords.verify_password("hunter23", stored)


def test_hashes_are_salted():
    assert passwords.hash_password("same-pass", iterations=1000) != passwords.hash_password("same-pass", iterations=1000)


def test_empty_password_hashes_to_empty_string():
    assert passwords.hash_password("") == ""


def test_legacy_plaintext_still_verifies_and_needs_upgrade():
    assert passwords.verify_password("oldsecret", "oldsecret")
    assert passwords.needs_upgrade("oldsecret")
    assert not passwords.needs_upgrade(passwords.hash_password("oldsecret", iterations=1000))
    assert not passwords.needs_upgrade(None)


def test_verify_rejects_missing_and_malformed():
    assert not passwords.verify_password(None, "x")
    assert not passwords.verify_password("x", None)
    assert not passwords.verify_password("x", "$HASH$not-a-valid-hash")


def test_password_validation():
    assert passwords.is_valid_password("123456")
    assert not passwords.is_valid_password("12345")
    assert not passwords.is_valid_password(None)
    assert not passwords.is_valid_password("$HASH$abcdef")


def test_password_strength():
    assert passwords.password_strength("abcdef") == "Weak"
    assert passwords.password_strength("abcdefgh1") == "Medium"
    assert passwords.password_strength("Abcdefgh123!") == "Strong"
