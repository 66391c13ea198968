import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from flox.errors import AlreadyUsedError, ErrorCode, ReferralCodeInvalidError
from flox.referral import service as service_module
from flox.referral.models import ReferralCode, ReferralCodeUsage
from flox.referral.seed import default_codes
from flox.referral.validator import ValidationResult


@pytest.fixture
def users(status_service):
    for user_id in ("user_a", "user_b", "user_c"):
        status_service.ensure_user(user_id)
    return ["user_a", "user_b", "user_c"]


def count_usages(database, referral_code_id):
    with database.session() as session:
        return session.query(ReferralCodeUsage).filter(
            ReferralCodeUsage.referral_code_id == referral_code_id
        ).count()


def reload(database, referral_code_id):
    with database.session() as session:
        return session.get(ReferralCode, referral_code_id)


def test_lookup_is_case_insensitive_and_trimmed(referral_service, make_code, now):
    make_code("FLOX25OFF")

    result = referral_service.validate_code("  flox25off ", now)

    assert result.valid is True
    assert result.referral_code.code == "FLOX25OFF"


def test_unknown_and_blank_codes_are_not_found(referral_service, now):
    assert referral_service.validate_code("NOPE", now).reason == ErrorCode.NOT_FOUND
    assert referral_service.validate_code("   ", now).reason == ErrorCode.NOT_FOUND


def test_validate_does_not_change_state(referral_service, make_code, database, now):
    referral_code = make_code("FRIEND", max_uses=2)

    for _ in range(3):
        assert referral_service.validate_code("FRIEND", now).valid is True

    assert reload(database, referral_code.id).current_uses == 0
    assert count_usages(database, referral_code.id) == 0


def test_redeem_records_usage_and_increments(referral_service, make_code, database, users, now):
    referral_code = make_code("FRIEND", max_uses=2)

    usage = referral_service.redeem("friend", "user_a", subscription_id="sub_1", now=now)

    assert usage.user_id == "user_a"
    assert usage.subscription_id == "sub_1"
    assert usage.used_at == now
    assert reload(database, referral_code.id).current_uses == 1
    assert referral_service.has_user_used("user_a", referral_code.id) is True
    assert referral_service.has_user_used("user_b", referral_code.id) is False


def test_redeem_twice_by_same_user_is_rejected(referral_service, make_code, database, users, now):
    referral_code = make_code("FRIEND")
    referral_service.redeem("FRIEND", "user_a", now=now)

    with pytest.raises(AlreadyUsedError):
        referral_service.redeem("FRIEND", "user_a", now=now)

    assert reload(database, referral_code.id).current_uses == 1
    assert count_usages(database, referral_code.id) == 1


def test_redeem_stops_at_cap(referral_service, make_code, database, users, now):
    referral_code = make_code("FRIEND", max_uses=2)
    referral_service.redeem("FRIEND", "user_a", now=now)
    referral_service.redeem("FRIEND", "user_b", now=now)

    with pytest.raises(ReferralCodeInvalidError) as exc_info:
        referral_service.redeem("FRIEND", "user_c", now=now)

    assert exc_info.value.code == ErrorCode.USAGE_LIMIT_REACHED
    assert reload(database, referral_code.id).current_uses == 2
    assert count_usages(database, referral_code.id) == 2


def test_conditional_increment_guards_stale_validation(
    referral_service, make_code, database, users, now, monkeypatch
):
    """A redemption that validated against an old counter still cannot pass the cap."""
    referral_code = make_code("FRIEND", max_uses=1, current_uses=1)
    monkeypatch.setattr(service_module, "validate_code", lambda code, at: ValidationResult.ok(code))

    with pytest.raises(ReferralCodeInvalidError) as exc_info:
        referral_service.redeem("FRIEND", "user_a", now=now)

    assert exc_info.value.code == ErrorCode.USAGE_LIMIT_REACHED
    assert reload(database, referral_code.id).current_uses == 1
    assert count_usages(database, referral_code.id) == 0


def test_concurrent_redemptions_never_pass_the_cap(referral_service, make_code, database, status_service, now):
    referral_code = make_code("FRIEND", max_uses=3)
    user_ids = [f"user_{n}" for n in range(10)]
    for user_id in user_ids:
        status_service.ensure_user(user_id)
    barrier = threading.Barrier(len(user_ids))

    def attempt(user_id):
        barrier.wait()
        try:
            referral_service.redeem("FRIEND", user_id, now=now)
            return "ok"
        except ReferralCodeInvalidError as e:
            return e.code.value

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        outcomes = list(pool.map(attempt, user_ids))

    assert outcomes.count("ok") == 3
    assert outcomes.count(ErrorCode.USAGE_LIMIT_REACHED.value) == 7
    assert reload(database, referral_code.id).current_uses == 3
    assert count_usages(database, referral_code.id) == 3


@pytest.mark.parametrize(
    "code_kwargs, reason",
    [
        ({"is_active": False}, ErrorCode.INACTIVE),
        ({"expires_at": datetime(2026, 1, 1)}, ErrorCode.EXPIRED),
    ],
)
def test_redeem_revalidates(referral_service, make_code, database, users, now, code_kwargs, reason):
    referral_code = make_code("FRIEND", **code_kwargs)

    with pytest.raises(ReferralCodeInvalidError) as exc_info:
        referral_service.redeem("FRIEND", "user_a", now=now)

    assert exc_info.value.code == reason
    assert count_usages(database, referral_code.id) == 0


def test_redeem_unknown_code(referral_service, users, now):
    with pytest.raises(ReferralCodeInvalidError) as exc_info:
        referral_service.redeem("GHOST", "user_a", now=now)

    assert exc_info.value.code == ErrorCode.NOT_FOUND


def test_user_usage_lists_redeemed_codes(referral_service, make_code, users, now):
    make_code("FRIEND", description="Friend discount")
    make_code("TRIAL7", discount_type="trial_extension", discount_value=7)
    referral_service.redeem("FRIEND", "user_a", subscription_id="sub_1", now=now)
    referral_service.redeem("TRIAL7", "user_a", subscription_id="sub_2", now=now + timedelta(hours=1))

    usage = referral_service.get_user_usage("user_a")

    assert [u["code"] for u in usage] == ["TRIAL7", "FRIEND"]
    assert usage[1]["description"] == "Friend discount"
    assert usage[1]["subscription_id"] == "sub_1"
    assert referral_service.get_user_usage("user_b") == []


# ==================== ADMINISTRATION ====================


def test_create_code_normalizes(referral_service):
    referral_code = referral_service.create_code(" spring ", "percentage", 15, max_uses=10)

    assert referral_code.code == "SPRING"
    assert referral_code.current_uses == 0
    assert referral_code.is_active is True


def test_create_code_accepts_zero_percent(referral_service):
    referral_code = referral_service.create_code("NOOP", "percentage", 0)

    assert referral_code.discount_value == 0


@pytest.mark.parametrize(
    "discount_type, value",
    [
        ("percentage", -1),
        ("percentage", 101),
        ("percentage", None),
        ("fixed", None),
        ("trial_extension", 0),
    ],
)
def test_create_code_rejects_inconsistent_terms(referral_service, discount_type, value):
    with pytest.raises(ValueError):
        referral_service.create_code("BAD", discount_type, value)


def test_create_code_rejects_unknown_type(referral_service):
    with pytest.raises(ValueError):
        referral_service.create_code("BAD", "bogus", 10)


def test_create_code_rejects_duplicates(referral_service):
    referral_service.create_code("SPRING", "free")

    with pytest.raises(ValueError, match="already exists"):
        referral_service.create_code("spring", "free")


def test_seed_codes_is_repeatable(referral_service):
    codes = default_codes()

    first = referral_service.seed_codes(codes)
    second = referral_service.seed_codes(codes)

    assert "FLOX25OFF" in first
    assert "FLOXVIP" in first
    assert len(first) == len(codes)
    assert second == []


def test_deactivate_code(referral_service, make_code, now):
    make_code("FRIEND")

    assert referral_service.deactivate_code("friend") is True
    assert referral_service.validate_code("FRIEND", now).reason == ErrorCode.INACTIVE
    assert referral_service.deactivate_code("GHOST") is False


# ==================== LAUNCH CODES ====================


def test_exhausted_vip_code(referral_service, make_code, now):
    make_code("FLOXVIP", "free", 100, max_uses=10, current_uses=10)

    assert referral_service.validate_code("FLOXVIP", now).reason == ErrorCode.USAGE_LIMIT_REACHED


def test_expired_code_with_uses_left(referral_service, make_code, now):
    make_code("FLOX50OFF", "percentage", 50, max_uses=100, expires_at=now - timedelta(days=1))

    assert referral_service.validate_code("FLOX50OFF", now).reason == ErrorCode.EXPIRED


def test_welcome_code_once_per_user(referral_service, make_code, users, now):
    make_code("WELCOME10", "percentage", 10)
    referral_service.redeem("WELCOME10", "user_a", now=now)

    with pytest.raises(AlreadyUsedError):
        referral_service.redeem("welcome10", "user_a", now=now)

    referral_service.redeem("WELCOME10", "user_b", now=now)
