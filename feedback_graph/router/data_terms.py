"""
Question vocabulary that names specific recorded data, used to spot
questions about properties the graph does not track.
"""

import re
from typing import List, Optional, Pattern, Tuple

from ..kg.models import SchemaDescriptor

# (term, pattern in the question, properties that would record it)
DATA_TERMS: List[Tuple[str, Pattern, List[str]]] = [
    ("sentiment", re.compile(r"\bsentiments?\b", re.IGNORECASE), ["sentiment_score", "sentiment"]),
    ("rating", re.compile(r"\b(?:ratings?|rated|star\s+ratings?)\b", re.IGNORECASE), ["rating", "star_rating"]),
    ("price", re.compile(r"\b(?:prices?|priced|pricing|costs?)\b", re.IGNORECASE), ["price", "cost"]),
    ("age", re.compile(r"\b(?:ages?|how\s+old)\b", re.IGNORECASE), ["age", "birth_year"]),
    ("gender", re.compile(r"\bgenders?\b", re.IGNORECASE), ["gender"]),
    ("location", re.compile(r"\b(?:countr(?:y|ies)|regions?|locations?)\b", re.IGNORECASE),
     ["country", "region", "location"]),
    ("revenue", re.compile(r"\b(?:revenue|sales)\b", re.IGNORECASE), ["revenue", "sales"]),
]


def find_untracked_terms(question: str, schema: Optional[SchemaDescriptor]) -> List[str]:
    """
    Data terms the question asks about that no schema property records.

    Returns an empty list when no schema is available.
    """
    if schema is None or not question:
        return []
    known = {name.lower() for name in schema.all_property_names()}
    return [
        term
        for term, pattern, properties in DATA_TERMS
        if pattern.search(question) and not known.intersection(properties)
    ]
