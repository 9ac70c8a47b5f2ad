#!/usr/bin/env python3
"""
Upload the local rulebook to cloud storage and publish its URL.

After a successful upload the URL is stored in the ``rulebook_url`` setting
(category ``documents``, public) so the document endpoints redirect to it.

Usage:
    python scripts/upload_rulebook.py
    python scripts/upload_rulebook.py --file path/to/rulebook.pdf
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.database import engine, get_db_context
from app.models.setting import SettingCategory
from app.services.settings_service import get_settings_service
from app.services.storage_backends import CloudBackend, Destination, StorageConfig

RULEBOOK_URL_KEY = "rulebook_url"


async def upload_rulebook(path: Path) -> bool:
    """Upload the file and store its public URL."""
    settings = get_settings()
    config = StorageConfig.from_settings(settings)

    if not settings.cloud_credentials_complete:
        print("Cloud storage credentials are incomplete.")
        print("Set R2_ACCOUNT_ID, R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY in .env")
        return False

    if not path.is_file():
        print(f"Rulebook file not found: {path}")
        return False

    content = path.read_bytes()
    print(f"Rulebook: {path} ({len(content) / 1024 / 1024:.2f} MB)")

    backend = CloudBackend(config)
    destination = Destination(folder=f"{config.cloud_folder_root}/documents", generated_name=path.name)
    print(f"Uploading to {config.bucket_name}/{destination.key} ...")
    url = await backend.put(destination, content, "application/pdf")
    print(f"Uploaded: {url}")

    async with get_db_context() as db:
        await get_settings_service().set(
            db,
            RULEBOOK_URL_KEY,
            url,
            description="Public URL of the event rulebook",
            category=SettingCategory.DOCUMENTS,
            is_public=True,
        )
    print(f"Saved setting '{RULEBOOK_URL_KEY}'")
    return True


async def main():
    """Main entry point."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Upload the rulebook to cloud storage")
    parser.add_argument(
        "--file",
        "-f",
        type=Path,
        default=settings.upload_path / settings.rulebook_filename,
        help="Rulebook PDF to upload",
    )
    args = parser.parse_args()

    try:
        success = await upload_rulebook(args.file)
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\nAborted by user.")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
