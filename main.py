from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from loguru import logger

from adlib_harvester.config import CrawlConfig
from adlib_harvester.crawler import Crawler
from adlib_harvester.errors import ConfigError
from adlib_harvester.logs import setup_logging
from adlib_harvester.storage import JsonlStorage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Harvest ads from the LinkedIn Ad Library")
    parser.add_argument("--input", help="JSON file with run parameters (camelCase keys)")

    parser.add_argument("--account-owner", dest="account_owner", help="Advertiser (company) name to search for")
    parser.add_argument("--keyword", help="Keyword to search for")
    parser.add_argument("--max-urls", dest="max_urls_count", type=int, help="Max ads to collect (default 500)")
    parser.add_argument("--unlimited", dest="unlimited_mode", action="store_true", default=None,
                        help="Ignore --max-urls")
    parser.add_argument("--no-details", dest="scrape_ad_details", action="store_false", default=None,
                        help="Only collect ad URLs, skip detail pages")

    parser.add_argument("--local", dest="local_mode", action="store_true", default=None,
                        help="Single worker, listing pages fully drained first")
    parser.add_argument("--concurrency", dest="max_crawler_concurrency", type=int, help="Max concurrent workers")
    parser.add_argument("--min-concurrency", dest="min_crawler_concurrency", type=int, help="Min concurrent workers")
    parser.add_argument("--min-delay", dest="min_detail_delay", type=int, help="Min jitter delay per request (ms)")
    parser.add_argument("--max-delay", dest="max_detail_delay", type=int, help="Max jitter delay per request (ms)")
    parser.add_argument("--max-retries", dest="max_request_retries", type=int, help="Retries after a block")

    parser.add_argument("--proxy", dest="proxy_urls", action="append", help="Egress proxy URL (repeatable)")
    parser.add_argument("--cookies", help="Seed cookie header for every identity")
    parser.add_argument("--fetcher", choices=["curl", "requests"], help="HTTP transport (default curl)")

    parser.add_argument("--output", dest="output_path", help="Output JSONL file path")
    parser.add_argument("--checkpoint", dest="checkpoint_path", help="Checkpoint JSON file path")
    parser.add_argument("--identity-state", dest="identity_state_path", help="Identity pool state file")
    parser.add_argument("--debug", dest="debug_mode", action="store_true", default=None, help="Verbose logging")
    return parser


def load_config(argv: Optional[List[str]] = None) -> CrawlConfig:
    args = vars(build_parser().parse_args(argv))
    path = args.pop("input")
    base = CrawlConfig.from_json_file(path) if path else CrawlConfig()
    return base.merged(args).validate()


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as exc:
        setup_logging()
        logger.error("Configuration error: {}", exc)
        return 2

    setup_logging(config.debug_mode)
    storage = JsonlStorage(config.output_path, checkpoint_path=config.checkpoint_path)
    try:
        Crawler(config, storage).run()
    finally:
        storage.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
