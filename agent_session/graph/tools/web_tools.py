"""
tools/web_tools.py
------------------
Web search tool for the research subagent. Placeholder results keep the
local backend self-contained; swap with Tavily, NewsAPI, etc.
"""
from __future__ import annotations
from typing import Dict, Any, List

from langchain_core.tools import tool


@tool
def internet_search(query: str, top_k: int = 3) -> Dict[str, Any]:
    """Search the web for `query` and return the top results."""
    items: List[Dict[str, str]] = [
        {"title": f"{query} - Overview",
         "url": "https://example.com/overview",
         "snippet": "Background and key facts collected from public sources."},
        {"title": f"{query} - Recent developments",
         "url": "https://example.com/recent",
         "snippet": "Latest announcements and their reported impact."},
        {"title": f"{query} - Open questions",
         "url": "https://example.com/open",
         "snippet": "Points analysts still disagree on."},
    ]
    return {"query": query, "results": items[: max(top_k, 0)]}
