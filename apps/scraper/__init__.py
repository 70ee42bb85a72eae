"""
Scraper App - Resumable Paginated Table Scraper

Responsibilities:
- Scheduled execution (daily cron via APScheduler) or RUN_ONCE
- Page-count discovery from the listing's pagination links
- Bounded-concurrency page fetching with linear backoff retries (tenacity)
- Streaming extraction of table rows into records
- Append-only CSV output with a header written once per file
- Crash-consistent resume frontier (<output>.progress)
- Redis Pub/Sub completion events

Output:
- <output_file>.csv rows, <output_file>.progress frontier
- Redis event: channel=files.scraped_pages, payload={type, path, ts, ...}
"""
