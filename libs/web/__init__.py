"""Web page fetching collaborators."""

from .page_metadata import PageMetadata, PageMetadataFetcher, parse_page_metadata, provisional_title

__all__ = ["PageMetadata", "PageMetadataFetcher", "parse_page_metadata", "provisional_title"]
