"""
app/activitypub/activities.py

Representação das atividades trocadas com outros servidores.

`Activity` é uma união fechada com discriminante explícito (`kind`):
Follow, Accept, Undo ou Unknown. O inbox despacha com `match` sobre `kind`,
nunca inspecionando classes.

O JSON original recebido é mantido em `raw` para que o Accept possa
embutir o Follow exatamente como chegou.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

AS_CONTEXT = "https://www.w3.org/ns/activitystreams"


class ActivityKind(str, Enum):
    FOLLOW = "Follow"
    ACCEPT = "Accept"
    UNDO = "Undo"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Activity:
    kind: ActivityKind
    id: str | None = None
    actor_id: str | None = None
    object_id: str | None = None
    # Preenchido quando o objeto é outra atividade embutida (Undo{Follow}, Accept{Follow})
    object: "Activity | None" = None
    to: tuple[str, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_json(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)

        doc: dict[str, Any] = {"@context": AS_CONTEXT, "type": self.kind.value}
        if self.id is not None:
            doc["id"] = self.id
        if self.actor_id is not None:
            doc["actor"] = self.actor_id
        if self.to:
            doc["to"] = list(self.to)
        if self.object is not None:
            embedded = self.object.to_json()
            embedded.pop("@context", None)
            doc["object"] = embedded
        elif self.object_id is not None:
            doc["object"] = self.object_id
        return doc


def _uri_of(value: Any) -> str | None:
    """Aceita tanto a URI pura quanto um objeto com `id`."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


def _kind_of(type_value: Any) -> ActivityKind:
    # `type` pode vir como lista em documentos JSON-LD
    types = type_value if isinstance(type_value, list) else [type_value]
    for candidate in types:
        try:
            kind = ActivityKind(candidate)
        except ValueError:
            continue
        if kind is not ActivityKind.UNKNOWN:
            return kind
    return ActivityKind.UNKNOWN


def parse_activity(doc: Any) -> Activity:
    """
    Converte um documento JSON em `Activity`. Nunca levanta exceção:
    qualquer coisa irreconhecível vira `ActivityKind.UNKNOWN`.
    """
    if not isinstance(doc, dict):
        return Activity(ActivityKind.UNKNOWN)

    obj = doc.get("object")
    embedded = None
    if isinstance(obj, dict) and "type" in obj:
        embedded = parse_activity(obj)

    return Activity(
        kind=_kind_of(doc.get("type")),
        id=_uri_of(doc.get("id")),
        actor_id=_uri_of(doc.get("actor")),
        object_id=_uri_of(obj),
        object=embedded,
        raw=doc,
    )


def new_accept(follow: Activity, accept_id: str) -> Activity:
    """
    Accept em resposta a um Follow. O actor do Accept é o alvo do Follow,
    o objeto é o próprio Follow recebido e o destinatário é quem seguiu.
    """
    return Activity(
        kind=ActivityKind.ACCEPT,
        id=accept_id,
        actor_id=follow.object_id,
        object_id=follow.id,
        object=follow,
        to=(follow.actor_id,) if follow.actor_id else (),
    )
