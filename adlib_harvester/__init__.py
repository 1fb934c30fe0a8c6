"""Ad library harvester package.

Crawls the paginated ad listing of an ad-transparency library, then
classifies and extracts every ad detail page into structured records.

Key modules:
    crawler         -- Crawler: dispatch loop and outcome resolution
    frontier        -- Frontier: deduplicated priority work queue
    handlers        -- ListingHandler, DetailHandler, status mapping
    listing         -- listing page parser and search/pagination URLs
    classifier      -- CreativeTypeClassifier and its rule tables
    detail          -- extract_ad_record entry point
    extractors      -- shared-field extraction steps
    creatives       -- one extraction strategy per creative type
    dom             -- selector cascades, image sources, placeholder policy
    normalize       -- impression/percentage parsing, URL cleaning, fingerprint
    backoff         -- BackoffGovernor and transport BackoffStrategy
    rate_limiter    -- JitterPacer per-request delay
    identity        -- Identity and IdentityPool
    base            -- BaseFetcher abstract class
    fetchers        -- CurlFetcher, RequestsFetcher
    factory         -- FetcherFactory
    controller      -- ThreadPoolController for concurrency management
    smart_controller-- SmartController for adaptive concurrency
    strategies      -- ControlStrategy and concrete strategy classes
    metrics         -- MetricsCollector for fetch statistics
    tracker         -- ProgressTracker and checkpoints
    storage         -- StorageBase, JsonlStorage, MemoryStorage
    config          -- CrawlConfig
    models          -- enums and dataclasses shared across modules
"""
