import base64

from app.auth_utils import generate_token, hash_password, normalize_email, verify_password, verify_token


def test_hash_is_deterministic_and_unsalted() -> None:
    first = hash_password("Secret123!")
    assert first == hash_password("Secret123!")
    assert first != hash_password("Secret123?")
    assert len(first) == 44
    assert verify_password("Secret123!", first)
    assert not verify_password("nope", first)
    assert not verify_password("Secret123!", None)


def test_token_encodes_email_and_timestamp() -> None:
    token = generate_token("a@example.com", now_ms=1700000000000)
    assert base64.b64decode(token).decode() == "a@example.com:1700000000000"
    assert verify_token(token) == "a@example.com"


def test_verify_token_rejects_garbage() -> None:
    assert verify_token(None) is None
    assert verify_token("") is None
    assert verify_token("not base64!!") is None
    assert verify_token(base64.b64encode(b"\xff\xfe").decode()) is None
    assert verify_token(base64.b64encode(b":123").decode()) is None


def test_normalize_email() -> None:
    assert normalize_email("  Jin.Woo@Example.COM ") == "jin.woo@example.com"


def test_verify_token_accepts_missing_padding() -> None:
    token = base64.b64encode(b"a@test.com:12").decode()
    assert token.endswith("==")
    assert verify_token(token.rstrip("=")) == "a@test.com"
    assert verify_token(f" {token} ") == "a@test.com"
