"""
app/activitypub/uris.py

Tabela de URIs do servidor: constrói as URIs dos recursos locais
(actor, inbox, shared inbox, followers, chaves) e faz o caminho inverso,
classificando uma URI qualquer.

Rotas:
- /users/{identifier}            → actor
- /users/{identifier}/inbox      → inbox pessoal
- /users/{identifier}/followers  → coleção de followers
- /inbox                         → shared inbox

URIs de outro host, outro esquema ou caminho desconhecido são `unknown`.
"""

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, unquote, urlsplit

_PATH_RE = re.compile(r"^/users/(?P<identifier>[^/]+)(?:/(?P<collection>inbox|followers))?/?$")


class UriType(str, Enum):
    ACTOR = "actor"
    INBOX = "inbox"
    SHARED_INBOX = "shared_inbox"
    FOLLOWERS = "followers"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParsedUri:
    type: UriType
    identifier: str | None = None


UNKNOWN = ParsedUri(UriType.UNKNOWN)


class UriDispatcher:
    def __init__(self, domain: str, scheme: str = "https") -> None:
        self.domain = domain
        self.scheme = scheme
        self.base_url = f"{scheme}://{domain}"

    def build_actor_uri(self, identifier: str) -> str:
        return f"{self.base_url}/users/{quote(identifier, safe='')}"

    def build_inbox_uri(self, identifier: str | None = None) -> str:
        """Sem `identifier`, devolve o shared inbox."""
        if identifier is None:
            return f"{self.base_url}/inbox"
        return f"{self.build_actor_uri(identifier)}/inbox"

    def build_followers_uri(self, identifier: str) -> str:
        return f"{self.build_actor_uri(identifier)}/followers"

    def build_key_id(self, identifier: str, index: int = 0) -> str:
        # A chave primária mantém o fragmento que o Mastodon espera
        fragment = "main-key" if index == 0 else f"key-{index + 1}"
        return f"{self.build_actor_uri(identifier)}#{fragment}"

    def build_webfinger_subject(self, identifier: str) -> str:
        return f"acct:{identifier}@{self.domain}"

    def parse_acct(self, resource: str) -> str | None:
        """`acct:fulano@dominio` → "fulano", se o domínio for o nosso."""
        if resource.startswith("acct:"):
            resource = resource[len("acct:"):]
        username, sep, host = resource.lstrip("@").rpartition("@")
        if not sep or not username or host.lower() != self.domain.lower():
            return None
        return username

    def parse_uri(self, uri: str) -> ParsedUri:
        try:
            parts = urlsplit(uri)
        except ValueError:
            return UNKNOWN

        if parts.scheme != self.scheme or parts.netloc.lower() != self.domain.lower():
            return UNKNOWN
        if parts.query or parts.fragment:
            return UNKNOWN

        if parts.path in ("/inbox", "/inbox/"):
            return ParsedUri(UriType.SHARED_INBOX)

        match = _PATH_RE.match(parts.path)
        if match is None:
            return UNKNOWN

        identifier = unquote(match["identifier"])
        collection = match["collection"]
        if collection == "inbox":
            return ParsedUri(UriType.INBOX, identifier)
        if collection == "followers":
            return ParsedUri(UriType.FOLLOWERS, identifier)
        return ParsedUri(UriType.ACTOR, identifier)
