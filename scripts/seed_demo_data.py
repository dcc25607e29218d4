"""Seed a tenant drive with sample files and print a read-only share link."""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Sequence

from tenant_drive.clients.drive_client import DriveClient

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = REPO_ROOT / "sample_data"


def _discover_files(data_dir: Path) -> list[Path]:
    if not data_dir.exists():
        raise FileNotFoundError(f"Sample data directory not found: {data_dir}")
    return [path for path in sorted(data_dir.iterdir()) if path.is_file()]


def seed(client: DriveClient, data_files: Sequence[Path], folder_name: str, ttl_hours: float) -> dict:
    client.mkdir("/", folder_name)
    print(f"Created folder /{folder_name}")

    result = client.upload(f"/{folder_name}", list(data_files))
    print(result["message"])
    for skipped in result.get("skipped", []):
        print(f" !! skipped {skipped}")

    share = client.create_share(f"/{folder_name}", permission="read", ttl_hours=ttl_hours)
    print(f"Share {share['id']} expires {share['expiresAt']}")
    print(f"  {client.base_url.rstrip('/')}/api/files?share={share['token']}")
    return share


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed tenant drive demo data")
    parser.add_argument("--env", default="local", help="Label used in folder naming")
    parser.add_argument("--rest-base", default="http://localhost:8000", help="REST base URL")
    parser.add_argument("--data-dir", type=Path, default=DEFAULT_DATA_DIR, help="Directory of sample files")
    parser.add_argument("--ttl-hours", type=float, default=24.0, help="Lifetime of the printed share link")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    token = os.environ.get("AUTH_TOKEN")
    if not token:
        raise SystemExit("AUTH_TOKEN must hold a bearer token for the seeding tenant")
    files = _discover_files(args.data_dir)
    if not files:
        raise SystemExit(f"No files found in {args.data_dir}")

    client = DriveClient(base_url=args.rest_base, auth_token=token)
    seed(client, files, f"{args.env}-seed", args.ttl_hours)


if __name__ == "__main__":
    main()
