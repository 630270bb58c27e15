from context_engine.providers.extraction.file_text_extractor import FileTextExtractor
from context_engine.providers.extraction.web_page_provider import WebPageProvider

__all__ = ["FileTextExtractor", "WebPageProvider"]
