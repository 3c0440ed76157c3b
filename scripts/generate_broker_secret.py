#!/usr/bin/env python3
"""Generate realtime broker credentials (BROKER_KEY / BROKER_SECRET) for Parley."""

from __future__ import annotations

import argparse
import os
import re
import secrets
import sys
from pathlib import Path
from typing import Mapping

DEFAULT_KEY_BYTES = 10
DEFAULT_SECRET_BYTES = 32
KEY_VAR_NAME = "BROKER_KEY"
SECRET_VAR_NAME = "BROKER_SECRET"


def generate_credentials(key_bytes: int, secret_bytes: int) -> dict[str, str]:
    """Return a hex application key and a hex signing secret."""

    for label, size in (("key", key_bytes), ("secret", secret_bytes)):
        if size <= 0:
            raise ValueError(f"{label} byte length must be positive (got {size})")
    return {
        KEY_VAR_NAME: secrets.token_hex(key_bytes),
        SECRET_VAR_NAME: secrets.token_hex(secret_bytes),
    }


def update_env_file(path: Path, values: Mapping[str, str]) -> None:
    """Insert or replace the given variables in an env-style file."""

    lines = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    pending = dict(values)
    for index, line in enumerate(lines):
        for name in list(pending):
            if re.match(rf"^{re.escape(name)}=", line):
                lines[index] = f"{name}={pending.pop(name)}"
                break
    lines.extend(f"{name}={value}" for name, value in pending.items())

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        # chmod is not supported everywhere
        pass


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--key-bytes", type=int, default=DEFAULT_KEY_BYTES, help="Random bytes in the key.")
    parser.add_argument(
        "--secret-bytes", type=int, default=DEFAULT_SECRET_BYTES, help="Random bytes in the secret."
    )
    parser.add_argument(
        "--update-env",
        type=Path,
        metavar="PATH",
        help="Update or create the specified env file with the generated credentials.",
    )
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Do not print the credentials to stdout (useful for CI rotations).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        credentials = generate_credentials(args.key_bytes, args.secret_bytes)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if args.update_env:
        update_env_file(args.update_env, credentials)
        print(f"Updated {args.update_env} with {', '.join(credentials)}.", file=sys.stderr)

    if not args.silent:
        for name, value in credentials.items():
            print(f"{name}={value}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
