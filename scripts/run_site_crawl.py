"""
Crawl one website from the CLI and print (or write) its summary JSON.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.crawling.config.loader import get_crawler_settings
from app.crawling.crawler import SiteCrawler
from app.crawling.errors import SiteCrawlError
from app.logging_utils import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Crawl one website and summarise it.")
    parser.add_argument("url", help="Seed URL of the website.")
    parser.add_argument(
        "--max-pages",
        dest="max_pages",
        type=int,
        default=None,
        help="Page budget including the seed (default: CRAWLER_WEBSITE_MAX_PAGES).",
    )
    parser.add_argument(
        "--out",
        dest="out",
        default=None,
        help="Optional path to write the summary JSON to.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    settings = get_crawler_settings()
    crawler = SiteCrawler(settings=settings)
    try:
        result = crawler.crawl(args.url, max_pages=args.max_pages or settings.website_max_pages)
    except SiteCrawlError as exc:
        print(json.dumps({"url": args.url, "error": exc.code, "message": str(exc)}, indent=2))
        return 1

    summary = result.to_summary(content_limit=settings.summary_content_limit)
    rendered = json.dumps(summary, indent=2, ensure_ascii=False, default=str)
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(rendered, encoding="utf-8")
        print(json.dumps({"url": args.url, "pages_crawled": result.pages_crawled, "out": str(out_path)}))
    else:
        print(rendered)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
