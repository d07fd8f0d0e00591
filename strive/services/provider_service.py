"""
strive/services/provider_service.py

Purpose: Service provider search/filter for the home screen
"""

from typing import Iterable, List, Optional

from strive.schemas.provider import ServiceProvider


def _matches_query(provider: ServiceProvider, query: str) -> bool:
    haystack = [provider.name, provider.service_name, provider.title]
    haystack.extend(skill.name for skill in provider.skills_offered)
    return any(query in (text or "").lower() for text in haystack)


def filter_providers(
    providers: Iterable[ServiceProvider],
    search_query: str = "",
    category: Optional[str] = None,
) -> List[ServiceProvider]:
    """
    Filters providers by exact category and a case-insensitive text query.

    A blank query or category is ignored. Input order is preserved.
    """
    query = search_query or ""
    # Trimmed only to detect a blank query; matched as typed
    query = query.lower() if query.strip() else ""
    result = []
    for provider in providers:
        if category and provider.category != category:
            continue
        if query and not _matches_query(provider, query):
            continue
        result.append(provider)
    return result
