"""
PaginationStrategy module for the payroll API's pagination patterns
"""

from typing import Any, Dict, Optional, Protocol

from .config_loader import MAX_PAGE_SIZE


class PaginationStrategy(Protocol):
    """Protocol for different pagination strategies"""

    page_size: int

    def get_page_params(self, page_num: int) -> Dict[str, Any]:
        """Return query parameters for the given 1-based page number"""
        ...

    def has_more(self, raw_data: Any, item_count: int, page_num: int) -> bool:
        """Decide whether another page should be requested after page_num"""
        ...


def _extract_path(data: Any, path: str) -> Optional[int]:
    """Follow a dotted path into a response body and read an integer"""
    if not path:
        return None
    try:
        for part in path.split('.'):
            data = data[part]
        return int(data)
    except (KeyError, IndexError, ValueError, TypeError):
        return None


def _has_more(item_count: int, page_size: int, page_num: int,
              total_results: Optional[int], total_pages: Optional[int]) -> bool:
    # An empty page ends iteration even when a total count claims otherwise
    if item_count == 0:
        return False
    if item_count < page_size:
        return False
    if total_pages is not None and page_num >= total_pages:
        return False
    if total_results is not None and page_num * page_size >= total_results:
        return False
    return True


class OffsetLimitPagination:
    """Offset-based pagination with $skip/$top (used by the workers endpoint)"""

    def __init__(self, config: Dict[str, Any]):
        self.page_size = min(int(config.get('page_size', MAX_PAGE_SIZE)), MAX_PAGE_SIZE)
        self.skip_param = config.get('skip_param', '$skip')
        self.top_param = config.get('top_param', '$top')
        self.total_results_path = config.get('total_results_path', '')

    def get_page_params(self, page_num: int) -> Dict[str, Any]:
        """Calculate offset for the page"""
        return {
            self.skip_param: (page_num - 1) * self.page_size,
            self.top_param: self.page_size,
        }

    def extract_total_results(self, raw_data: Any) -> Optional[int]:
        """Extract total results from response using configured path"""
        return _extract_path(raw_data, self.total_results_path)

    def has_more(self, raw_data: Any, item_count: int, page_num: int) -> bool:
        return _has_more(item_count, self.page_size, page_num,
                         self.extract_total_results(raw_data), None)


class PageBasedPagination:
    """Page-number pagination reporting totalPages/totalRecords in the body"""

    def __init__(self, config: Dict[str, Any]):
        self.page_size = min(int(config.get('page_size', MAX_PAGE_SIZE)), MAX_PAGE_SIZE)
        self.page_param = config.get('page_param', 'page')
        self.size_param = config.get('size_param', 'pageSize')
        self.first_page = int(config.get('first_page', 0))
        self.total_pages_path = config.get('total_pages_path', 'totalPages')
        self.total_results_path = config.get('total_results_path', 'totalRecords')

    def get_page_params(self, page_num: int) -> Dict[str, Any]:
        """Calculate page number for the page"""
        return {
            self.page_param: self.first_page + page_num - 1,
            self.size_param: self.page_size,
        }

    def extract_total_results(self, raw_data: Any) -> Optional[int]:
        return _extract_path(raw_data, self.total_results_path)

    def extract_total_pages(self, raw_data: Any) -> Optional[int]:
        return _extract_path(raw_data, self.total_pages_path)

    def has_more(self, raw_data: Any, item_count: int, page_num: int) -> bool:
        return _has_more(item_count, self.page_size, page_num,
                         self.extract_total_results(raw_data),
                         self.extract_total_pages(raw_data))


class PaginationFactory:
    """Factory for creating appropriate pagination strategy based on config"""

    STRATEGIES = {
        'offset_limit': OffsetLimitPagination,
        'page_based': PageBasedPagination,
    }

    @classmethod
    def create_strategy(cls, pagination_config: Dict[str, Any]) -> PaginationStrategy:
        """Create pagination strategy instance based on configuration"""
        strategy_type = pagination_config.get('strategy', 'offset_limit')

        if strategy_type not in cls.STRATEGIES:
            raise ValueError(f"Unsupported pagination strategy: {strategy_type}")

        strategy_class = cls.STRATEGIES[strategy_type]
        return strategy_class(pagination_config)
