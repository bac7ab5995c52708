"""Tests for individual components: locks, unit helpers, CLI exit codes."""

import asyncio
from decimal import Decimal

import pytest

from supertx import __main__ as cli
from supertx.chains import format_units, to_base_units
from supertx.errors import InsufficientFunds, TimedOut
from supertx.utils.locks import (
    LockTimeoutError,
    clear_companion_locks,
    companion_lock,
    get_companion_lock,
)

from conftest import COMPANION, SUPERTX_HASH, TEST_PRIVATE_KEY


class TestCompanionLocks:
    """Tests for the concurrency locks module."""

    @pytest.mark.asyncio
    async def test_same_companion_same_lock(self):
        """Address casing does not matter."""
        assert get_companion_lock(COMPANION) is get_companion_lock(COMPANION.lower())

    @pytest.mark.asyncio
    async def test_different_companions_get_different_locks(self):
        assert get_companion_lock(COMPANION) is not get_companion_lock("0x" + "01" * 20)

    @pytest.mark.asyncio
    async def test_companion_lock_context_manager(self):
        async with companion_lock(COMPANION, operation="test"):
            assert get_companion_lock(COMPANION).locked()

        assert not get_companion_lock(COMPANION).locked()

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        with pytest.raises(RuntimeError):
            async with companion_lock(COMPANION):
                raise RuntimeError("boom")

        assert not get_companion_lock(COMPANION).locked()

    @pytest.mark.asyncio
    async def test_lock_timeout(self):
        async with companion_lock(COMPANION):
            with pytest.raises(LockTimeoutError):
                async with companion_lock(COMPANION, timeout=0.05):
                    pass

    @pytest.mark.asyncio
    async def test_waiter_proceeds_after_release(self):
        order = []

        async def holder():
            async with companion_lock(COMPANION):
                order.append("first")
                await asyncio.sleep(0.02)

        async def waiter():
            await asyncio.sleep(0)
            async with companion_lock(COMPANION):
                order.append("second")

        await asyncio.gather(holder(), waiter())

        assert order == ["first", "second"]

    def test_clear_locks(self):
        lock = get_companion_lock(COMPANION)
        clear_companion_locks()

        assert get_companion_lock(COMPANION) is not lock


class TestUnits:
    """Tests for token amount conversions."""

    def test_to_base_units(self):
        assert to_base_units(Decimal("100"), 6) == 100_000000
        assert to_base_units("0.000001", 6) == 1
        assert to_base_units(5, 0) == 5

    def test_excess_precision_rejected(self):
        with pytest.raises(ValueError):
            to_base_units("0.0000001", 6)

    def test_not_a_number_rejected(self):
        with pytest.raises(ValueError):
            to_base_units("ten", 6)

    def test_format_units(self):
        assert format_units(100_500000, 6) == "100.500000"
        assert format_units(0, 6) == "0.000000"


class TestCli:
    """Tests for CLI argument parsing and exit codes."""

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.setenv("PRIVATE_KEY", TEST_PRIVATE_KEY)
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)

    def test_parse_args(self):
        args = cli.parse_args(["--amount", "2.5", "--skip-funding", "--timeout", "30"])

        assert args.amount == Decimal("2.5")
        assert args.skip_funding
        assert args.timeout == 30.0
        assert not args.verbose

    def test_missing_key_exit_code(self, monkeypatch):
        monkeypatch.delenv("PRIVATE_KEY")
        monkeypatch.setattr(cli, "load_settings", lambda: cli.Settings(_env_file=None))

        assert cli.main([]) == 2

    def test_success_prints_hash(self, monkeypatch, capsys):
        class Result:
            hash = SUPERTX_HASH

        async def fake_run(settings, args):
            return Result()

        monkeypatch.setattr(cli, "run", fake_run)

        assert cli.main(["--skip-funding"]) == 0
        assert SUPERTX_HASH in capsys.readouterr().out

    def test_insufficient_funds_exit_code(self, monkeypatch, capsys):
        async def fake_run(settings, args):
            raise InsufficientFunds(COMPANION, "0xtoken", observed=50, required=100, chain_id=1)

        monkeypatch.setattr(cli, "run", fake_run)

        assert cli.main([]) == 3
        err = capsys.readouterr().err
        assert "InsufficientFunds" in err
        assert "observed=50 required=100" in err

    def test_timeout_exit_code_reports_hash(self, monkeypatch, capsys):
        async def fake_run(settings, args):
            raise TimedOut(SUPERTX_HASH, 600)

        monkeypatch.setattr(cli, "run", fake_run)

        assert cli.main([]) == 6
        assert SUPERTX_HASH in capsys.readouterr().err

    def test_excess_precision_amount_exit_code(self, capsys):
        assert cli.main(["--amount", "0.0000001", "--skip-funding"]) == 2
        assert "ConfigurationError" in capsys.readouterr().err

    def test_lock_timeout_exit_code(self, monkeypatch, capsys):
        async def fake_run(settings, args):
            raise LockTimeoutError(f"Could not acquire lock for companion {COMPANION} within 30s")

        monkeypatch.setattr(cli, "run", fake_run)

        assert cli.main([]) == 9
        assert "LockTimeoutError" in capsys.readouterr().err
