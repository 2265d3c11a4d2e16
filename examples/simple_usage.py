#!/usr/bin/env python3
"""
Simple Analyzer Cache Usage Example

Extracts text and metadata from local documents through a running analysis
server (e.g. `docker run -p 9998:9998 apache/tika`), caching the results
on disk so that a second run never contacts the server.

Usage:
    python examples/simple_usage.py file1.pdf [file2.docx ...]
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

from analyzer_cache import (
    AnalyzerClient,
    AnalyzerConfig,
    AnalyzerError,
    ExtractionService,
    QueryCache,
    profile_for_mime_type,
)

PROFILES = {
    "default": {
        "handler_strategy": "wrapping",
        "allow_ocr": False,
        "ocr_languages": "",
        "content_strategy": "prefer_tika",
        "content_composition": "text_and_metadata",
        "metadata_strategy": "combine",
        "cache_backend": "local",
    },
    "*": "default",
}


async def main(paths: list[Path]):
    """Resolve every file twice and show where the answers came from."""
    logging.basicConfig(level=logging.INFO)

    config = AnalyzerConfig(
        cache_backends={"local": Path("./analyzer_cache_data")},
        mime_type_profiles=PROFILES,
    )
    profile = profile_for_mime_type("application/octet-stream", config)

    async with AnalyzerClient(config) as client:
        cache = QueryCache(config, client)
        service = ExtractionService(cache)

        print("Analyzer Cache Simple Example")
        print("=" * 40)

        for pass_name in ("First pass", "Second pass (cached)"):
            print(f"\n📝 {pass_name}:")
            for path in paths:
                start = time.time()
                try:
                    text = await service.generate_text_content(profile, path)
                except AnalyzerError as e:
                    print(f"❌ {path.name}: {type(e).__name__}: {e}")
                    continue
                elapsed = time.time() - start
                preview = (text or "")[:80].replace("\n", " ")
                print(f"✅ {path.name} ({elapsed:.3f}s): {preview}...")

        stats = cache.get_statistics()
        print("\n📊 Cache Statistics:")
        print(f"   Hit rate: {stats['hit_rate']:.1%}")
        print(f"   Total requests: {stats['total_requests']}")
        print(f"   Analyzer queries: {stats['analyzer_queries']}")
        print(f"   Persistent upgrades: {stats['persistent_upgrades']}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main([Path(arg) for arg in sys.argv[1:]]))
