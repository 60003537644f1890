"""
Resumable catalog crawler.

Modules:
    client: Remote catalog client (categories, category products, product detail)
    checkpoint: Per-warehouse checkpoint store, the crawl's retry queue
    identity: Cross-warehouse product identity map
    merge: Record merge engine with field-level version history
    records: Product record store
    orchestrator: Crawl state machine with rate-limit pause and resume
    scheduler: APScheduler integration for periodic crawls

Data flow:
    CrawlOrchestrator -> CatalogClient (fetch) -> merge_product (transform)
    -> ProductRecordStore + IdentityMap (persist) -> CheckpointStore (advance)

Usage:
    from crawler.client import CatalogClient
    from crawler.orchestrator import CrawlOrchestrator, CrawlContext

Example:
    async with CatalogClient(warehouse="svq1") as client:
        result = await CrawlOrchestrator(session, client, CrawlContext()).run()

    print(f"Created {result['products_created']} products")
"""

__all__ = [
    "CatalogClient",
    "CallResult",
    "CheckpointStore",
    "CategoryProgress",
    "IdentityMap",
    "ProductRecordStore",
    "CrawlOrchestrator",
    "CrawlContext",
    "CrawlScheduler",
    "merge_product",
]
