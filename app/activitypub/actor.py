from dataclasses import dataclass
from typing import Any

import apmodel
from apkit.models import CryptographicKey, Person
from apmodel.vocab.actor import ActorEndpoints

from app.activitypub.keys import KeyManager, public_key_pem
from app.activitypub.uris import UriDispatcher


@dataclass(frozen=True)
class PublicKeyDescriptor:
    id: str
    owner: str
    public_key_pem: str


@dataclass(frozen=True)
class Actor:
    identifier: str
    uri: str
    inbox: str
    name: str | None = None
    summary: str | None = None
    url: str | None = None
    followers: str | None = None
    shared_inbox: str | None = None
    public_keys: tuple[PublicKeyDescriptor, ...] = ()

    def to_person(self) -> Person:
        """Documento Person publicado; só a chave primária vai em `publicKey`."""
        key = None
        if self.public_keys:
            primary = self.public_keys[0]
            key = CryptographicKey(
                id=primary.id,
                owner=primary.owner,
                publicKeyPem=primary.public_key_pem,
            )

        return Person(
            id=self.uri,
            name=self.name,
            preferredUsername=self.identifier,
            summary=self.summary,
            url=self.url,
            inbox=self.inbox,
            followers=self.followers,
            endpoints=ActorEndpoints(sharedInbox=self.shared_inbox) if self.shared_inbox else None,
            publicKey=key,
            manuallyApprovesFollowers=False,
        )

    def to_json(self) -> dict[str, Any]:
        return apmodel.to_dict(self.to_person())


class ActorResolver:
    def __init__(
        self,
        dispatcher: UriDispatcher,
        key_manager: KeyManager,
        username: str,
        display_name: str | None = None,
        summary: str | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.key_manager = key_manager
        self.username = username
        self.display_name = display_name
        self.summary = summary

    async def resolve_actor(self, identifier: str) -> Actor | None:
        """
        Monta o actor local a cada chamada. Qualquer identificador
        diferente da conta configurada é "não encontrado" (None).
        """
        if identifier != self.username:
            return None

        uri = self.dispatcher.build_actor_uri(identifier)
        pairs = await self.key_manager.get_or_create_key_pairs(identifier)
        return Actor(
            identifier=identifier,
            uri=uri,
            inbox=self.dispatcher.build_inbox_uri(identifier),
            name=self.display_name,
            summary=self.summary,
            url=f"{self.dispatcher.base_url}/",
            followers=self.dispatcher.build_followers_uri(identifier),
            shared_inbox=self.dispatcher.build_inbox_uri(),
            public_keys=tuple(
                PublicKeyDescriptor(
                    id=self.dispatcher.build_key_id(identifier, index),
                    owner=uri,
                    public_key_pem=public_key_pem(pair.public_key),
                )
                for index, pair in enumerate(pairs)
            ),
        )
