import sqlite3

import jwt
import pytest

from pharmapos.config import settings
from pharmapos.db import sqlite as db
from pharmapos.services import auth
from pharmapos.services.auth import ResetTokenStore

from conftest import ADMIN_PASSWORD, PHARMACIST_PIN


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def sent(monkeypatch):
    calls = []
    monkeypatch.setattr(auth, "send_password_reset_email", lambda email, token: calls.append((email, token)) or True)
    return calls


@pytest.fixture
def store():
    return ResetTokenStore(15, clock=FakeClock())


def test_hash_and_check_secret():
    hashed = auth.hash_secret("s3cret")
    assert hashed != "s3cret"
    assert auth.check_secret("s3cret", hashed)
    assert not auth.check_secret("wrong", hashed)
    assert not auth.check_secret("s3cret", "not-a-bcrypt-hash")


def test_pms_login_issues_eight_hour_token(seeded):
    result = auth.pms_login("ADM001", ADMIN_PASSWORD)

    assert result["user"] == {
        "name": "Alice Admin",
        "role": "admin",
        "employeeId": "ADM001",
        "branchId": seeded["branches"]["main"],
    }
    claims = auth.decode_token(result["token"])
    assert claims["role"] == "admin"
    assert claims["employeeId"] == "ADM001"
    assert claims["exp"] - claims["iat"] == settings.pms_token_hours * 3600 == 8 * 3600


@pytest.mark.parametrize(
    "employee_id, password",
    [("ADM001", "wrong"), ("NOPE", ADMIN_PASSWORD), ("OLD001", "old")],
)
def test_pms_login_rejects(seeded, employee_id, password):
    assert auth.pms_login(employee_id, password) is None


def test_pos_login_opens_sales_session(seeded):
    result = auth.pos_login(PHARMACIST_PIN)

    p = result["pharmacist"]
    assert p["name"] == "Pia Pharmacist"
    assert p["staffId"] == seeded["staff_id"]
    assert p["branchId"] == seeded["branches"]["main"]

    session = db.get_sales_session(p["sessionId"])
    assert session["branch_id"] == seeded["branches"]["main"]
    assert session["staff_id"] == seeded["staff_id"]
    assert session["share_percentage"] == "100.00"

    claims = auth.decode_token(result["token"])
    assert claims["sessionId"] == p["sessionId"]
    assert claims["exp"] - claims["iat"] == 12 * 3600


def test_pos_login_each_login_gets_new_session(seeded):
    first = auth.pos_login(PHARMACIST_PIN)["pharmacist"]["sessionId"]
    second = auth.pos_login(PHARMACIST_PIN)["pharmacist"]["sessionId"]
    assert first != second


@pytest.mark.parametrize("pin", ["0000", "9999"])
def test_pos_login_rejects_unknown_or_inactive(seeded, pin):
    assert auth.pos_login(pin) is None


def test_pos_login_rolls_back_session_on_failure(seeded):
    conn = sqlite3.connect(settings.db_path)
    conn.execute("DROP TABLE pharmacist_sessions")
    conn.commit()

    with pytest.raises(sqlite3.OperationalError):
        auth.pos_login(PHARMACIST_PIN)

    assert conn.execute("SELECT COUNT(*) FROM sales_sessions").fetchone()[0] == 0
    conn.close()


def test_decode_token_rejects_foreign_signature():
    token = jwt.encode({"role": "admin"}, "other-secret", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        auth.decode_token(token)


def test_reset_token_is_six_digits():
    for _ in range(50):
        token = ResetTokenStore.generate()
        assert len(token) == 6 and token.isdigit() and token[0] != "0"


def test_forgot_password_requires_matching_email(seeded, sent, store):
    assert not auth.forgot_password("ADM001", "mark@example.com", store=store)
    assert sent == []

    assert auth.forgot_password("ADM001", "alice@example.com", store=store)
    assert sent[0][0] == "alice@example.com"
    assert store.matches("ADM001", sent[0][1])


def test_verify_reset_token(seeded, sent, store):
    auth.forgot_password("ADM001", "alice@example.com", store=store)
    token = sent[0][1]

    assert auth.verify_reset_token("ADM001", "000000", store=store) == (False, "Invalid or expired reset token")
    assert auth.verify_reset_token("ADM001", token, store=store) == (True, "Token verified successfully")
    # verification does not consume the token
    assert auth.verify_reset_token("ADM001", token, store=store)[0]


def test_verify_reset_token_expires_after_fifteen_minutes(seeded, sent):
    clock = FakeClock()
    store = ResetTokenStore(15, clock=clock)
    auth.forgot_password("ADM001", "alice@example.com", store=store)
    token = sent[0][1]

    clock.now += 15 * 60
    assert auth.verify_reset_token("ADM001", token, store=store)[0]

    clock.now += 1
    assert auth.verify_reset_token("ADM001", token, store=store) == (False, "Reset token has expired")
    assert auth.verify_reset_token("ADM001", token, store=store) == (False, "Invalid or expired reset token")


def test_reset_password_changes_password_once(seeded, sent, store):
    auth.forgot_password("ADM001", "alice@example.com", store=store)
    token = sent[0][1]

    ok, msg = auth.reset_password("ADM001", token, "brand-new-pw", store=store)
    assert ok and msg == "Password has been reset successfully"

    assert auth.pms_login("ADM001", ADMIN_PASSWORD) is None
    assert auth.pms_login("ADM001", "brand-new-pw") is not None

    assert auth.reset_password("ADM001", token, "again", store=store) == (False, "Invalid or expired reset token")


def test_reset_password_rejects_expired_token(seeded, sent):
    clock = FakeClock()
    store = ResetTokenStore(15, clock=clock)
    auth.forgot_password("ADM001", "alice@example.com", store=store)

    clock.now += 16 * 60
    ok, _ = auth.reset_password("ADM001", sent[0][1], "brand-new-pw", store=store)
    assert not ok
    assert auth.pms_login("ADM001", ADMIN_PASSWORD) is not None
