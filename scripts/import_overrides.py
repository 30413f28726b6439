#!/usr/bin/env python3
"""
Import a corrections JSON file into the configured override backend.

Accepts the file format written by the file backend:
    [{"productName": "...", "correctCode": "..."}, ...]
and older corrections files that use "correctHsCode" for the code.
Entries go through the same validation as user feedback.

Usage:
    python scripts/import_overrides.py <corrections.json>
"""
import sys
import os
import asyncio
import json

# Add parent directory to path so we can import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.domain.classification.engine import build_engine
from packages.domain.classification.errors import InvalidCorrection


async def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/import_overrides.py <corrections.json>")
        sys.exit(1)

    with open(sys.argv[1], encoding="utf-8") as f:
        records = json.load(f)

    engine = await build_engine(get_settings())

    imported = 0
    skipped = 0
    try:
        for record in records:
            name = record.get("productName", "")
            code = record.get("correctCode") or record.get("correctHsCode", "")
            try:
                await engine.feedback.record(name, code)
                imported += 1
            except InvalidCorrection as e:
                print(f"  Skipped {name!r}: {e.message}")
                skipped += 1
    finally:
        await sessionmanager.close()

    print(f"\nImported: {imported}, skipped: {skipped}")


if __name__ == "__main__":
    asyncio.run(main())
