"""
Tool result transforms.

- summaries: one-line trace text for the reasoning panel
- structured: UI records (issue_list, activity_list)
- condense: token-bounded text fed back to the model
"""

from .condense import condense_for_model, extract_topics
from .structured import extract_structured_data
from .summaries import summarize_tool_result

__all__ = [
    "condense_for_model",
    "extract_topics",
    "extract_structured_data",
    "summarize_tool_result",
]
