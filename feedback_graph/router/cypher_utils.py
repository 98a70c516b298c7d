"""
Helpers for cleaning, bounding and checking Cypher text.
"""

import re
from typing import Dict, Any, List, Optional, Tuple

DEFAULT_MAX_LIMIT = 100

_FENCE_PATTERN = re.compile(r"```(?:cypher|sql)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_STRING_LITERAL_PATTERN = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_WRITE_CLAUSE_PATTERN = re.compile(
    r"\b(CREATE|MERGE|DELETE|DETACH|SET|REMOVE|DROP|FOREACH|LOAD\s+CSV|IN\s+TRANSACTIONS)\b",
    re.IGNORECASE,
)
_READ_START_PATTERN = re.compile(r"^\s*(OPTIONAL\s+MATCH|MATCH|WITH|UNWIND|CALL|RETURN)\b", re.IGNORECASE)
_RETURN_PATTERN = re.compile(r"\bRETURN\b", re.IGNORECASE)
_LIMIT_PATTERN = re.compile(r"\bLIMIT\s+(\d+|\$\w+)", re.IGNORECASE)
_RAW_QUERY_PATTERN = re.compile(
    r"((?:OPTIONAL\s+)?MATCH\b.*?\bRETURN\b.*?)(?:\n\s*\n|$)",
    re.DOTALL | re.IGNORECASE,
)
_LABEL_PATTERN = re.compile(r"\(\s*\w*\s*((?::\s*`?\w+`?\s*)+)")
_REL_TYPE_PATTERN = re.compile(r"\[\s*\w*\s*:\s*([`\w|:\s]+?)\s*(?:\*[\d.]*)?\s*(?:\{[^\]]*\})?\s*\]")


def strip_markdown_fence(content: str) -> str:
    """Remove a surrounding ```cypher fence if present."""
    text = (content or "").strip()
    match = _FENCE_PATTERN.search(text)
    return (match.group(1) if match else text).strip()


def _mask_strings(query: str) -> str:
    return _STRING_LITERAL_PATTERN.sub("''", query)


def _sub_outside_strings(pattern, replacement, query: str) -> str:
    """Apply a substitution to query text, leaving string literals untouched."""
    pieces = []
    position = 0
    for literal in _STRING_LITERAL_PATTERN.finditer(query):
        pieces.append(pattern.sub(replacement, query[position:literal.start()]))
        pieces.append(literal.group(0))
        position = literal.end()
    pieces.append(pattern.sub(replacement, query[position:]))
    return "".join(pieces)


def contains_write_clause(query: str) -> bool:
    """True if the query would modify the graph."""
    return bool(_WRITE_CLAUSE_PATTERN.search(_mask_strings(query)))


def looks_like_read_query(query: Optional[str]) -> bool:
    """A plausible read-only Cypher statement."""
    if not query or not query.strip():
        return False
    masked = _mask_strings(query)
    return (
        bool(_READ_START_PATTERN.match(masked))
        and bool(_RETURN_PATTERN.search(masked))
        and not contains_write_clause(query)
    )


def clamp_limit(value: Any, max_limit: int = DEFAULT_MAX_LIMIT, minimum: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return max_limit
    return max(minimum, min(number, max_limit))


def enforce_limit(
    query: str,
    parameters: Optional[Dict[str, Any]] = None,
    max_limit: int = DEFAULT_MAX_LIMIT
) -> Tuple[str, Dict[str, Any]]:
    """
    Bound the number of rows a query can return.

    Literal limits above max_limit are rewritten down, LIMIT $param values are
    clamped, and a query whose final RETURN has no LIMIT gets one appended.

    Returns:
        The bounded query and a copy of the (possibly clamped) parameters
    """
    params = dict(parameters or {})
    bounded = query.strip().rstrip(";").rstrip()

    def rewrite(match):
        target = match.group(1)
        if target.startswith("$"):
            name = target[1:]
            if name in params:
                params[name] = clamp_limit(params[name], max_limit)
            return match.group(0)
        if int(target) > max_limit:
            return f"LIMIT {max_limit}"
        return match.group(0)

    bounded = _sub_outside_strings(_LIMIT_PATTERN, rewrite, bounded)

    masked = _mask_strings(bounded)
    returns = list(_RETURN_PATTERN.finditer(masked))
    last_return = returns[-1].start() if returns else 0
    if not _LIMIT_PATTERN.search(masked, last_return):
        bounded = f"{bounded}\nLIMIT {max_limit}"

    return bounded, params


def fill_template(cypher: str, params: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Substitute integer {{placeholders}} into template text.

    Only integers are substituted textually; every other value stays a bind
    parameter so user text never becomes part of the query string.
    """
    query = cypher
    bind_params = {}
    for key, value in params.items():
        placeholder = "{{" + key + "}}"
        if placeholder in query and isinstance(value, int) and not isinstance(value, bool):
            query = query.replace(placeholder, str(value))
        else:
            bind_params[key] = value
    return query.strip(), bind_params


def extract_query_from_text(text: str) -> Optional[str]:
    """Best-effort Cypher extraction from free-form model output."""
    if not text:
        return None
    fenced = _FENCE_PATTERN.search(text)
    if fenced and looks_like_read_query(fenced.group(1)):
        return fenced.group(1).strip()
    raw = _RAW_QUERY_PATTERN.search(text)
    if raw and looks_like_read_query(raw.group(1)):
        return raw.group(1).strip()
    return None


def find_unknown_identifiers(query: str, labels: List[str], relationship_types: List[str]) -> List[str]:
    """Labels and relationship types used in the query but absent from the schema."""
    masked = _mask_strings(query)
    unknown = set()
    known_labels = set(labels)
    known_rels = set(relationship_types)

    for match in _LABEL_PATTERN.finditer(masked):
        for label in re.findall(r"`?(\w+)`?", match.group(1)):
            if label not in known_labels:
                unknown.add(label)

    for match in _REL_TYPE_PATTERN.finditer(masked):
        for rel_type in re.split(r"[|:]", match.group(1)):
            rel_type = rel_type.strip().strip("`")
            if rel_type and rel_type not in known_rels:
                unknown.add(rel_type)

    return sorted(unknown)
