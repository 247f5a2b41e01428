"""
Connection string parsing and inspection.

Parses vendor connection strings of the form ``key=value;key=value`` and
decides whether a managed identity access token should be injected as the
connection's password.

Keyword matching is case-insensitive and ignores spaces and underscores, so
``User ID``, ``userid`` and ``USER_ID`` all name the same field. An empty
value counts as absent (``User=;`` has no user).

Example:
    >>> descriptor = inspect("Server=db;Database=app;User=svc;")
    >>> descriptor.has_user, descriptor.has_password
    (True, False)
    >>> descriptor.permits_injection()
    True
"""

from dataclasses import dataclass
from enum import Enum

from querygate.errors.exceptions import MalformedConnectionStringError
from querygate.types import DatabaseType

USER_KEYS = frozenset({"user", "userid", "uid", "username"})
PASSWORD_KEYS = frozenset({"password", "pwd"})
AUTH_METHOD_KEYS = frozenset({"authentication"})
INTEGRATED_SECURITY_KEYS = frozenset({"integratedsecurity", "trustedconnection"})

_TRUTHY_INTEGRATED_VALUES = frozenset({"true", "yes", "sspi"})
_QUOTES = ('"', "'")


def normalize_key(key: str) -> str:
    """Canonical form used to compare connection string keywords."""
    return "".join(ch for ch in key.lower() if ch not in " _\t")


def _split_segments(connection_string: str) -> list[str]:
    segments: list[str] = []
    current: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(connection_string):
        ch = connection_string[i]
        if quote:
            current.append(ch)
            if ch == quote:
                # Doubled quote inside a quoted value is an escaped quote
                if i + 1 < len(connection_string) and connection_string[i + 1] == quote:
                    current.append(quote)
                    i += 1
                else:
                    quote = None
        elif ch in _QUOTES and "".join(current).rstrip().endswith("="):
            quote = ch
            current.append(ch)
        elif ch == ";":
            segments.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1

    if quote:
        raise MalformedConnectionStringError(
            "Unterminated quoted value in connection string",
            context={"quote": quote},
        )
    segments.append("".join(current))
    return segments


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        quote = value[0]
        return value[1:-1].replace(quote * 2, quote)
    return value


def _quote(value: str) -> str:
    if any(ch in value for ch in ';"\'') or value != value.strip():
        return '"' + value.replace('"', '""') + '"'
    return value


class ConnectionString:
    """
    Parsed connection string preserving key order and original spelling.

    Instances are immutable; ``with_value`` and ``with_password`` return new
    instances.
    """

    def __init__(self, pairs: list[tuple[str, str]]):
        self._pairs = tuple(pairs)

    @classmethod
    def parse(cls, connection_string: str) -> "ConnectionString":
        """
        Parse a connection string into key/value pairs.

        Args:
            connection_string: Raw ``key=value;`` text

        Returns:
            Parsed ConnectionString

        Raises:
            MalformedConnectionStringError: If a segment has no ``=`` or an
                empty key
        """
        if connection_string is None:
            raise MalformedConnectionStringError("Connection string is None")

        pairs: list[tuple[str, str]] = []
        for segment in _split_segments(connection_string):
            if not segment.strip():
                continue
            key, sep, value = segment.partition("=")
            if not sep:
                raise MalformedConnectionStringError(
                    "Connection string segment is not a key=value pair",
                    context={"segment_length": len(segment)},
                )
            key = key.strip()
            if not key:
                raise MalformedConnectionStringError(
                    "Connection string segment has an empty key"
                )
            pairs.append((key, _unquote(value.strip())))
        return cls(pairs)

    @property
    def pairs(self) -> tuple[tuple[str, str], ...]:
        return self._pairs

    def get(self, keys: frozenset[str] | str) -> str | None:
        """Return the first non-empty value for any of the given keywords."""
        wanted = {normalize_key(keys)} if isinstance(keys, str) else keys
        for key, value in self._pairs:
            if normalize_key(key) in wanted and value:
                return value
        return None

    def has(self, keys: frozenset[str] | str) -> bool:
        return self.get(keys) is not None

    def with_value(
        self, key: str, value: str, synonyms: frozenset[str] | None = None
    ) -> "ConnectionString":
        """
        Return a copy with ``key`` set to ``value``.

        Every existing entry matching ``key`` or one of its synonyms is
        removed first, so the result holds exactly one entry for the field.
        """
        drop = set(synonyms or ()) | {normalize_key(key)}
        pairs = [(k, v) for k, v in self._pairs if normalize_key(k) not in drop]
        pairs.append((key, value))
        return ConnectionString(pairs)

    def with_password(self, password: str) -> "ConnectionString":
        return self.with_value("Password", password, PASSWORD_KEYS)

    def render(self) -> str:
        return ";".join(f"{key}={_quote(value)}" for key, value in self._pairs) + ";"

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        keys = ", ".join(key for key, _ in self._pairs)
        return f"ConnectionString(keys=[{keys}])"


class InjectionRule(str, Enum):
    """
    When a managed identity token may replace the connection's password.

    USER_WITHOUT_PASSWORD: a user is named but no password or explicit
        authentication method is given (MySQL).
    NO_CREDENTIALS: neither user nor password, no authentication method and
        no integrated security (SQL Server, where a user or password would
        conflict with an access token).
    NO_PASSWORD: no password and no authentication method (PostgreSQL).
    """

    USER_WITHOUT_PASSWORD = "user_without_password"
    NO_CREDENTIALS = "no_credentials"
    NO_PASSWORD = "no_password"

    @classmethod
    def for_engine(cls, database_type: DatabaseType | str) -> "InjectionRule":
        return _ENGINE_RULES[DatabaseType(database_type)]


_ENGINE_RULES = {
    DatabaseType.MSSQL: InjectionRule.NO_CREDENTIALS,
    DatabaseType.MYSQL: InjectionRule.USER_WITHOUT_PASSWORD,
    DatabaseType.POSTGRESQL: InjectionRule.NO_PASSWORD,
}


@dataclass(frozen=True)
class ConnectionDescriptor:
    """
    Credential-related facts derived from a connection string.

    Attributes:
        has_user: A non-empty user keyword is present
        has_password: A non-empty password keyword is present
        has_explicit_auth_method: An ``Authentication`` keyword is present
        uses_integrated_security: Windows integrated security is requested
        rule: Injection rule applied by permits_injection()
    """

    has_user: bool
    has_password: bool
    has_explicit_auth_method: bool
    uses_integrated_security: bool = False
    rule: InjectionRule = InjectionRule.USER_WITHOUT_PASSWORD

    def permits_injection(self) -> bool:
        if self.has_password or self.has_explicit_auth_method:
            return False
        if self.rule == InjectionRule.USER_WITHOUT_PASSWORD:
            return self.has_user
        if self.rule == InjectionRule.NO_CREDENTIALS:
            return not self.has_user and not self.uses_integrated_security
        return True


def describe(
    parsed: ConnectionString,
    rule: InjectionRule = InjectionRule.USER_WITHOUT_PASSWORD,
) -> ConnectionDescriptor:
    """Build a descriptor from an already parsed connection string."""
    integrated = parsed.get(INTEGRATED_SECURITY_KEYS)
    return ConnectionDescriptor(
        has_user=parsed.has(USER_KEYS),
        has_password=parsed.has(PASSWORD_KEYS),
        has_explicit_auth_method=parsed.has(AUTH_METHOD_KEYS),
        uses_integrated_security=(
            integrated is not None and integrated.strip().lower() in _TRUTHY_INTEGRATED_VALUES
        ),
        rule=rule,
    )


def inspect(
    connection_string: str,
    rule: InjectionRule = InjectionRule.USER_WITHOUT_PASSWORD,
) -> ConnectionDescriptor:
    """
    Parse a connection string and report which credentials it carries.

    Args:
        connection_string: Raw connection string
        rule: Injection rule recorded on the descriptor

    Returns:
        ConnectionDescriptor for the string

    Raises:
        MalformedConnectionStringError: If the string is not key=value pairs
    """
    return describe(ConnectionString.parse(connection_string), rule)


__all__ = [
    "USER_KEYS",
    "PASSWORD_KEYS",
    "AUTH_METHOD_KEYS",
    "INTEGRATED_SECURITY_KEYS",
    "ConnectionString",
    "ConnectionDescriptor",
    "InjectionRule",
    "describe",
    "inspect",
    "normalize_key",
]
