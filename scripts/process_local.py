"""Run saved emails through the capture pipeline into a local vault folder.

Reads .eml files and Apple Mail .emlx files, decodes them, and captures them
exactly like the inbound webhook does, but against a directory on disk
instead of the database. Useful for checking what a newsletter's cleaned
HTML, sidecar note, and digest entry look like before deploying rule changes.

Usage:
    uv run python scripts/process_local.py ~/Vault sample_eml/
    uv run python scripts/process_local.py ~/Vault sample_eml/500013.emlx --to newsletters@example.com
"""

import argparse
import asyncio
import sys
import traceback
from pathlib import Path

from mailnotes.ingestion.email import EmailDecoder
from mailnotes.services.capture import CaptureService
from mailnotes.services.document_store import FileDocumentStore


def read_rfc822(path: Path) -> bytes:
    raw = path.read_bytes()
    if path.suffix != ".emlx":
        return raw
    # .emlx: first line is the byte count of the RFC822 message, plist follows it
    first_newline = raw.index(b"\n")
    byte_count = int(raw[:first_newline].strip())
    start = first_newline + 1
    return raw[start : start + byte_count]


def collect(paths: list[Path]) -> list[Path]:
    files = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix in (".eml", ".emlx")))
        else:
            files.append(path)
    return files


async def process(vault: Path, files: list[Path], recipient: str) -> int:
    service = CaptureService(FileDocumentStore(vault))
    decoder = EmailDecoder()
    failures = 0

    for path in files:
        print(f"\n-- {path.name}")
        try:
            message = decoder.decode(read_rfc822(path))
            print(f"   From:    {message.sender.display_name} <{message.sender.address}>")
            print(f"   Subject: {message.subject}")
            print(f"   HTML:    {len(message.html_body or '') / 1024:.1f} KB")

            result = await service.capture(message, recipient)
            status = "written" if result.written else "duplicate, skipped"
            topic = f" [{result.topic}]" if result.topic else ""
            print(f"   Route:   {result.route.value}{topic}")
            print(f"   Output:  {result.key} ({status})")
        except Exception:
            failures += 1
            print(f"   ERROR processing {path.name}")
            traceback.print_exc()

    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("vault", type=Path, help="vault directory to write into")
    parser.add_argument("paths", type=Path, nargs="+", help=".eml/.emlx files or directories")
    parser.add_argument(
        "--to",
        default="newsletters@localhost",
        help="recipient address used for routing (default: newsletters@localhost)",
    )
    args = parser.parse_args()

    if not args.vault.is_dir():
        print(f"Vault folder not found: {args.vault}", file=sys.stderr)
        return 1

    files = collect(args.paths)
    if not files:
        print("No .eml or .emlx files found.")
        return 0

    print(f"Processing {len(files)} file(s) into {args.vault}")
    failures = asyncio.run(process(args.vault, files, args.to))
    print(f"\nDone, {len(files) - failures} ok, {failures} failed")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
