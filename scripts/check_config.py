#!/usr/bin/env python3
"""
Check that the environment is configured before starting the server.

Reports the SMTP, cloud storage and database settings (secrets masked) and
optionally sends a test email, pings the database, logs in to the SMTP
server or checks that the storage bucket is reachable.

Usage:
    python scripts/check_config.py
    python scripts/check_config.py --send-test you@example.com --check-db
    python scripts/check_config.py --verify-smtp --verify-cloud
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text

from app.config import get_settings
from app.services.email_service import EmailService, smtp_config_from_settings
from app.services.smtp_pool import SMTPConnectionPool
from app.services.storage_backends import CloudBackend, StorageConfig

KNOWN_SMTP_HOSTS = {
    "smtp.gmail.com": "Gmail",
    "smtp.sendgrid.net": "SendGrid",
    "smtp.office365.com": "Office 365",
}


def mask(value: str) -> str:
    """Show the first and last three characters of a secret."""
    if len(value) > 6:
        return f"{value[:3]}{'*' * (len(value) - 6)}{value[-3:]}"
    return "*" * len(value)


def report(name: str, value: str, secret: bool = False, required: bool = True) -> bool:
    """Print one variable's status and return whether it is set."""
    if value:
        shown = f"{mask(value)} ({len(value)} chars)" if secret else value
        print(f"  OK       {name:<24} = {shown}")
        return True
    print(f"  {'MISSING' if required else 'unset':<8} {name}")
    return not required


def check_email(settings) -> bool:
    print("\n=== Email (SMTP) ===")
    ok = all([
        report("EMAIL_HOST", settings.email_host),
        report("EMAIL_PORT", str(settings.email_port)),
        report("EMAIL_USER", settings.email_user),
        report("EMAIL_PASS", settings.email_pass, secret=True),
    ])
    mode = "implicit TLS" if settings.email_secure else "STARTTLS"
    print(f"  Transport: port {settings.email_port}, {mode}")

    provider = KNOWN_SMTP_HOSTS.get(settings.email_host)
    if provider:
        print(f"  Provider: {provider}")
    if settings.email_host == "smtp.gmail.com":
        if " " in settings.email_pass:
            print("  WARNING: EMAIL_PASS contains spaces; Gmail app passwords must not")
        elif settings.email_pass and len(settings.email_pass) != 16:
            print("  WARNING: Gmail app passwords are exactly 16 characters")
    if settings.email_host == "smtp.sendgrid.net" and settings.email_user != "apikey":
        print("  WARNING: SendGrid expects EMAIL_USER=apikey")
    return ok


def check_storage(settings) -> bool:
    print("\n=== Storage ===")
    report("USE_CLOUD_STORAGE", str(settings.use_cloud_storage).lower(), required=False)
    cloud_ok = all([
        report("R2_ACCOUNT_ID", settings.r2_account_id, required=settings.use_cloud_storage),
        report("R2_ACCESS_KEY_ID", settings.r2_access_key_id, required=settings.use_cloud_storage),
        report("R2_SECRET_ACCESS_KEY", settings.r2_secret_access_key, secret=True,
               required=settings.use_cloud_storage),
    ])
    config = StorageConfig.from_settings(settings)
    print(f"  Active backend: {config.backend.value}")
    if config.use_cloud:
        print(f"  Bucket: {config.bucket_name} at {config.endpoint_url}")
    else:
        print(f"  Upload root: {config.upload_root}")
        rulebook = config.upload_root / settings.rulebook_filename
        print(f"  Rulebook: {'present' if rulebook.is_file() else 'not found'} ({rulebook})")
    return cloud_ok


async def check_database(settings) -> bool:
    from app.database import engine

    print("\n=== Database ===")
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        print(f"  Connected ({engine.url.get_backend_name()})")
        return True
    except Exception as e:
        print(f"  FAILED: {e}")
        return False
    finally:
        await engine.dispose()


async def verify_smtp(settings) -> bool:
    print(f"\n=== Verifying SMTP login at {settings.email_host}:{settings.email_port} ===")
    pool = SMTPConnectionPool(smtp_config_from_settings())
    try:
        await pool.verify()
        print("  Connected and authenticated")
        return True
    except Exception as e:
        print(f"  FAILED: {e}")
        return False


async def verify_cloud(settings) -> bool:
    config = StorageConfig.from_settings(settings)
    print(f"\n=== Verifying bucket {config.bucket_name} ===")
    if not settings.cloud_credentials_complete:
        print("  SKIPPED: cloud credentials are incomplete")
        return False
    try:
        await CloudBackend(config).verify_bucket()
        print("  Bucket reachable")
        return True
    except Exception as e:
        print(f"  FAILED: {e}")
        return False


async def send_test(recipient: str) -> bool:
    print(f"\n=== Sending test email to {recipient} ===")
    service = EmailService(smtp_config_from_settings())
    try:
        message_id = await service.send_test_email(recipient)
        print(f"  Sent: {message_id}")
        return True
    except Exception as e:
        print(f"  FAILED: {e}")
        return False
    finally:
        await service.close()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Check EventDesk environment configuration")
    parser.add_argument("--send-test", metavar="EMAIL", help="Send a test email to this address")
    parser.add_argument("--check-db", action="store_true", help="Try connecting to the database")
    parser.add_argument("--verify-smtp", action="store_true", help="Connect and log in to the SMTP server")
    parser.add_argument("--verify-cloud", action="store_true", help="Check that the storage bucket is reachable")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration could not be loaded: {e}")
        sys.exit(1)

    print("=" * 50)
    print(f"{settings.app_name} Configuration Check ({settings.app_env})")
    print("=" * 50)

    results = [check_email(settings), check_storage(settings)]
    if args.check_db:
        results.append(await check_database(settings))
    if args.verify_smtp:
        results.append(await verify_smtp(settings))
    if args.verify_cloud:
        results.append(await verify_cloud(settings))
    if args.send_test:
        results.append(await send_test(args.send_test))

    print("\n" + "=" * 50)
    print("All checks passed" if all(results) else "Some checks failed")
    print("=" * 50)
    sys.exit(0 if all(results) else 1)


if __name__ == "__main__":
    asyncio.run(main())
