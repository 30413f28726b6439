#!/usr/bin/env python3
"""
Classify product names from the command line using the configured engine.

Usage:
    python scripts/classify_products.py "<name>[; <name> ...]" [context]

Example:
    python scripts/classify_products.py "sapi hidup; komputer portabel"
"""
import sys
import os
import asyncio

# Add parent directory to path so we can import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.domain.classification.engine import build_engine
from packages.domain.classification.errors import ClassificationError, InferenceUnavailable


async def main():
    if len(sys.argv) < 2:
        print('Usage: python scripts/classify_products.py "<name>[; <name> ...]" [context]')
        sys.exit(1)

    raw_input = sys.argv[1]
    context = sys.argv[2] if len(sys.argv) > 2 else None

    settings = get_settings()
    engine = await build_engine(settings)

    print('='*80)
    print(f'Classifying: {raw_input}')
    print(f'Catalog: {len(engine.catalog)} codes, inference configured: {engine.inference_configured}')
    print('='*80)

    try:
        results = await engine.resolver.resolve(raw_input, context)
    except InferenceUnavailable as e:
        if e.quota_exhausted:
            wait = e.retry_after_seconds or settings.quota_cooldown_seconds
            print(f'❌ Quota exhausted, wait {wait}s before retrying')
        else:
            print(f'❌ Inference unavailable: {e.message}')
        sys.exit(2)
    except ClassificationError as e:
        print(f'❌ {e.error_code}: {e.message}')
        sys.exit(2)
    finally:
        await sessionmanager.close()

    for idx, result in enumerate(results, 1):
        print()
        print(f'[{idx}] {result.original_product_name}')
        print(f'  Code:     {result.code_and_description}')
        print(f'  Source:   {result.source.value}')
        print(f'  Analysis: {result.analysis_text}')


if __name__ == "__main__":
    asyncio.run(main())
