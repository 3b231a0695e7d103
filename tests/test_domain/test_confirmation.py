"""Tests for confirmation code generation and expiry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from middleman_escrow.domain.confirmation import as_utc, generate_code, is_expired

TTL = timedelta(minutes=10)
ISSUED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestGenerateCode:
    def test_six_digits_in_range(self) -> None:
        for _ in range(500):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100_000 <= int(code) <= 999_999

    def test_codes_vary(self) -> None:
        assert len({generate_code() for _ in range(50)}) > 1


class TestIsExpired:
    def test_fresh_code(self) -> None:
        assert not is_expired(ISSUED, ISSUED + timedelta(minutes=5), TTL)

    def test_exactly_at_ttl_is_still_valid(self) -> None:
        assert not is_expired(ISSUED, ISSUED + TTL, TTL)

    def test_one_second_past_ttl(self) -> None:
        assert is_expired(ISSUED, ISSUED + TTL + timedelta(seconds=1), TTL)

    def test_naive_timestamps_are_treated_as_utc(self) -> None:
        naive = ISSUED.replace(tzinfo=None)
        assert not is_expired(naive, ISSUED + timedelta(minutes=9), TTL)
        assert is_expired(naive, ISSUED + timedelta(minutes=11), TTL)


class TestAsUtc:
    def test_converts_other_zones(self) -> None:
        from datetime import timezone

        plus_two = ISSUED.astimezone(timezone(timedelta(hours=2)))
        assert as_utc(plus_two) == ISSUED
        assert as_utc(plus_two).tzinfo is UTC
