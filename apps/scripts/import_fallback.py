"""Copy the local JSON store into the database.

Usage::

    DATABASE_URL=postgresql://... python -m apps.scripts.import_fallback
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from libs.core.exceptions import ConfigurationError
from libs.core.settings import get_settings
from libs.logging import setup_logging
from libs.storage import FileArticleStore, SqlArticleStore
from libs.usecases.import_fallback import ImportFallback, ImportResult

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=settings.data_dir,
        help="directory holding articles.json (default: DATA_DIR)",
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="target database (default: DATABASE_URL)",
    )
    return parser.parse_args(argv)


async def run(data_dir: Path, database_url: str) -> ImportResult:
    if not database_url or not database_url.strip():
        raise ConfigurationError("DATABASE_URL is not set")
    source = FileArticleStore(data_dir)
    target = SqlArticleStore.from_url(database_url)
    try:
        await target.init_schema()
        return await ImportFallback(source, target)()
    finally:
        await target.close()


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = _parse_args(argv)
    result = asyncio.run(run(args.data_dir, args.database_url))
    print(f"done: imported={result.imported} skipped={result.skipped}")
    if result.skipped:
        print("NOTE: records without an owner email or already in the database are skipped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
