#!/usr/bin/env python3
"""DeFi Alerts: Service Connectivity Verification Script.

Verifies end-to-end connectivity to everything the service depends on:
  - PostgreSQL (async via asyncpg), plus the alerts table in strict mode
  - PostgreSQL (sync via psycopg2)
  - Redis (async via redis-py)
  - Telegram Bot API (getMe self-test)

Usage:
    python scripts/verify_connectivity.py          # Basic connectivity checks
    python scripts/verify_connectivity.py --strict  # + alerts table, Telegram required
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------
def _now() -> str:
    """Return current UTC timestamp string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _report(tag: str, label: str, detail: str = "") -> None:
    suffix = f" -- {detail}" if detail else ""
    print(f"  [{tag}] {label}{suffix}")


# ---------------------------------------------------------------------------
# Check: PostgreSQL async connection (asyncpg)
# ---------------------------------------------------------------------------
async def check_async_db(strict: bool) -> list[str]:
    """Test async database connectivity. Returns list of failure descriptions."""
    from sqlalchemy import text

    from defi_alerts.core.database import async_session_factory

    failures: list[str] = []
    print(f"\n[{_now()}] Checking PostgreSQL (async / asyncpg)...")

    try:
        async with async_session_factory() as session:
            value = (await session.execute(text("SELECT 1"))).scalar()
            if value == 1:
                _report("PASS", "SELECT 1", "async connection works")
            else:
                _report("FAIL", "SELECT 1", f"expected 1, got {value}")
                failures.append("Async SELECT 1 returned unexpected value")

            try:
                count = (await session.execute(text("SELECT COUNT(*) FROM alerts"))).scalar()
                _report("PASS", "alerts table", f"{count} rows")
            except Exception as exc:
                if strict:
                    _report("FAIL", "alerts table", str(exc))
                    failures.append("alerts table missing (run `alembic upgrade head`)")
                else:
                    _report("WARN", "alerts table", "not found (migration may not have run yet)")
    except Exception as exc:
        _report("FAIL", "Async DB connection", str(exc))
        failures.append(f"Async DB connection failed: {exc}")

    return failures


# ---------------------------------------------------------------------------
# Check: PostgreSQL sync connection (psycopg2)
# ---------------------------------------------------------------------------
def check_sync_db() -> list[str]:
    """Test sync database connectivity. Returns list of failure descriptions."""
    from sqlalchemy import text

    from defi_alerts.core.database import sync_session_factory

    failures: list[str] = []
    print(f"\n[{_now()}] Checking PostgreSQL (sync / psycopg2)...")

    try:
        with sync_session_factory() as session:
            value = session.execute(text("SELECT 1")).scalar()
            if value == 1:
                _report("PASS", "SELECT 1", "sync connection works")
            else:
                _report("FAIL", "SELECT 1", f"expected 1, got {value}")
                failures.append("Sync SELECT 1 returned unexpected value")
    except Exception as exc:
        _report("FAIL", "Sync DB connection", str(exc))
        failures.append(f"Sync DB connection failed: {exc}")

    return failures


# ---------------------------------------------------------------------------
# Check: Redis async connection
# ---------------------------------------------------------------------------
async def check_redis() -> list[str]:
    """Test Redis connectivity and the response cache round trip."""
    from defi_alerts.cache.response_cache import RedisResponseCache
    from defi_alerts.core.redis import close_redis, get_redis

    failures: list[str] = []
    print(f"\n[{_now()}] Checking Redis...")

    try:
        redis = await get_redis()
        if await redis.ping():
            _report("PASS", "PING", "Redis is responsive")
        else:
            _report("FAIL", "PING", "unexpected response")
            failures.append("Redis PING returned unexpected response")

        test_key = "aave:market:test:connectivity"
        cache = RedisResponseCache(redis)
        await cache.set(test_key, {"ok": True}, ttl_seconds=60)
        value = await cache.get(test_key)
        if value == {"ok": True}:
            _report("PASS", "cache SET/GET", f"key '{test_key}'")
        else:
            _report("FAIL", "cache SET/GET", f"expected {{'ok': True}}, got {value!r}")
            failures.append("Redis cache round trip returned unexpected value")
        await cache.invalidate(test_key)
    except Exception as exc:
        _report("FAIL", "Redis connection", str(exc))
        failures.append(f"Redis connection failed: {exc}")
    finally:
        await close_redis()

    return failures


# ---------------------------------------------------------------------------
# Check: Telegram Bot API
# ---------------------------------------------------------------------------
async def check_telegram(strict: bool) -> list[str]:
    """Run the notifier self-test against getMe."""
    from defi_alerts.notifications.telegram import TelegramNotifier

    failures: list[str] = []
    print(f"\n[{_now()}] Checking Telegram Bot API...")

    async with TelegramNotifier() as notifier:
        check = await notifier.test_connection()

    if check.success:
        _report("PASS", "getMe", f"@{check.channel_info.get('username')}")
    elif check.reason == "disabled" and not strict:
        _report("WARN", "getMe", "TELEGRAM_BOT_TOKEN not set, notifications disabled")
    else:
        _report("FAIL", "getMe", f"{check.reason}: {check.error}")
        failures.append(f"Telegram self-test failed ({check.reason})")

    return failures


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Verify DeFi Alerts service connectivity"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Require the alerts table and a working Telegram bot token.",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("  DeFi Alerts: Service Connectivity Check")
    print("=" * 60)
    print(f"  Mode: {'STRICT' if args.strict else 'BASIC'}")
    print(f"  Time: {_now()}")

    checks = [
        await check_async_db(strict=args.strict),
        check_sync_db(),
        await check_redis(),
        await check_telegram(strict=args.strict),
    ]
    all_failures = [f for failures in checks for f in failures]
    passed = sum(1 for failures in checks if not failures)

    print("\n" + "=" * 60)
    if not all_failures:
        print(f"  RESULT: All {len(checks)} connectivity checks PASSED")
    else:
        print(f"  RESULT: {passed}/{len(checks)} checks passed, {len(all_failures)} failure(s):")
        for f in all_failures:
            print(f"    - {f}")
    print("=" * 60)

    if all_failures:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
