"""
Query Safety Validator.

Static check applied to every generated traversal statement before it can
reach the graph store. Only reading clauses (MATCH, WHERE, RETURN, WITH,
ORDER BY, DISTINCT, LIMIT) should pass.

This is a case-insensitive substring denylist, not a parser. Known weakness:
it cannot see Unicode look-alikes or keywords split by comments, and it
rejects harmless statements whose identifiers contain a keyword (``offset``
contains SET, ``createdAt`` contains CREATE, ``showcase`` contains SHOW).
Run traversals with a read-only session as well; do not rely on this check
alone.
"""

FORBIDDEN_KEYWORDS: tuple[str, ...] = (
    # Writes
    "CREATE",
    "DELETE",
    "SET",
    "REMOVE",
    "MERGE",
    "DROP",
    "DETACH",
    "FOREACH",
    # Procedures and admin namespaces
    "CALL",
    "APOC",
    "DB.",
    "DBM.",
    "DBMS.",
    "SHOW",
    "SYSTEM",
)


def find_forbidden_keywords(statement: str) -> list[str]:
    """Forbidden keywords found in the statement, in denylist order."""
    upper = statement.upper()
    return [keyword for keyword in FORBIDDEN_KEYWORDS if keyword in upper]


def is_safe_query(statement: str) -> bool:
    """True if the statement contains none of the forbidden keywords."""
    return not find_forbidden_keywords(statement)
