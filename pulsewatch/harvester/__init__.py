from .discoverer import SourceDiscoverer, DiscoveryResult
from .scraper import ContentScraper, ScrapeResult
from .fetchers import HttpPageFetcher, PlaywrightPageFetcher, create_page_fetcher, extract_text
from .object_store import LocalObjectStore, SupabaseObjectStore, create_object_store
from .source_search import BraveSourceSearch

__all__ = [
    "SourceDiscoverer",
    "DiscoveryResult",
    "ContentScraper",
    "ScrapeResult",
    "HttpPageFetcher",
    "PlaywrightPageFetcher",
    "create_page_fetcher",
    "extract_text",
    "LocalObjectStore",
    "SupabaseObjectStore",
    "create_object_store",
    "BraveSourceSearch",
]
