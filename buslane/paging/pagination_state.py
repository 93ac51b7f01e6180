"""
Pagination state exposed to the host UI.
"""

from dataclasses import dataclass


@dataclass
class PaginationState:
    current_page: int = 1
    can_go_next: bool = False
    can_go_previous: bool = False
    page_info_text: str = ""

    def update_page_info(self, message_count: int, page_size: int) -> None:
        """Sets the text to ``Page N (start-end)``; an empty page shows just ``Page N``."""
        if message_count <= 0:
            self.page_info_text = f"Page {self.current_page}"
            return
        start = (self.current_page - 1) * page_size + 1
        end = start + message_count - 1
        self.page_info_text = f"Page {self.current_page} ({start}-{end})"

    def update_page_info_with_total(self, message_count: int, page_size: int, total: int) -> None:
        if message_count <= 0:
            self.page_info_text = f"Page {self.current_page}"
            return
        start = (self.current_page - 1) * page_size + 1
        end = start + message_count - 1
        self.page_info_text = f"Page {self.current_page} ({start}-{end} of {total})"

    def reset(self) -> None:
        self.current_page = 1
        self.can_go_next = False
        self.can_go_previous = False
        self.page_info_text = ""
