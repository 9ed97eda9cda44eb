"""
app/activitypub/keys.py

Ciclo de vida das chaves criptográficas do actor.

Cada actor tem uma lista ordenada de pares RSA (RSASSA-PKCS1-v1_5). O primeiro
par é o primário, usado para assinar; os demais existem para rotação.
Os pares são gerados no primeiro acesso e persistidos em formato JWK sob
a chave ["keys", identifier] do armazenamento.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.errors import CryptoError
from app.storage.kv import KvStore

log = logging.getLogger(__name__)

ALGORITHM = "RSASSA-PKCS1-v1_5"
PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class KeyPair:
    identifier: str
    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey
    algorithm: str = ALGORITHM


# ---------------------------------------------------------------------------
# JWK
# ---------------------------------------------------------------------------


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _uint_b64url(value: str) -> int:
    padded = value + "=" * (-len(value) % 4)
    return int.from_bytes(base64.urlsafe_b64decode(padded), "big")


def export_jwk(key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> dict:
    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.private_numbers()
        public = numbers.public_numbers
        return {
            "kty": "RSA",
            "alg": "RS256",
            "key_ops": ["sign"],
            "ext": True,
            "n": _b64url_uint(public.n),
            "e": _b64url_uint(public.e),
            "d": _b64url_uint(numbers.d),
            "p": _b64url_uint(numbers.p),
            "q": _b64url_uint(numbers.q),
            "dp": _b64url_uint(numbers.dmp1),
            "dq": _b64url_uint(numbers.dmq1),
            "qi": _b64url_uint(numbers.iqmp),
        }
    if isinstance(key, rsa.RSAPublicKey):
        public = key.public_numbers()
        return {
            "kty": "RSA",
            "alg": "RS256",
            "key_ops": ["verify"],
            "ext": True,
            "n": _b64url_uint(public.n),
            "e": _b64url_uint(public.e),
        }
    raise CryptoError(f"Tipo de chave não suportado: {type(key).__name__}")


def import_jwk(jwk: dict, kind: str) -> rsa.RSAPrivateKey | rsa.RSAPublicKey:
    """`kind` é "private" ou "public"."""
    try:
        if jwk.get("kty") != "RSA":
            raise ValueError(f"kty não suportado: {jwk.get('kty')!r}")
        public = rsa.RSAPublicNumbers(e=_uint_b64url(jwk["e"]), n=_uint_b64url(jwk["n"]))
        if kind == "public":
            return public.public_key()
        if kind == "private":
            return rsa.RSAPrivateNumbers(
                p=_uint_b64url(jwk["p"]),
                q=_uint_b64url(jwk["q"]),
                d=_uint_b64url(jwk["d"]),
                dmp1=_uint_b64url(jwk["dp"]),
                dmq1=_uint_b64url(jwk["dq"]),
                iqmp=_uint_b64url(jwk["qi"]),
                public_numbers=public,
            ).private_key()
        raise ValueError(f"kind inválido: {kind!r}")
    except (KeyError, TypeError, ValueError) as e:
        raise CryptoError(f"JWK inválido: {e}") from e


def export_key_pair(pair: KeyPair) -> dict:
    return {
        "algorithm": pair.algorithm,
        "privateKey": export_jwk(pair.private_key),
        "publicKey": export_jwk(pair.public_key),
    }


def import_key_pair(identifier: str, data: dict) -> KeyPair:
    try:
        algorithm = data.get("algorithm", ALGORITHM)
        private_jwk, public_jwk = data["privateKey"], data["publicKey"]
    except (AttributeError, KeyError) as e:
        raise CryptoError(f"Registro de chave inválido para {identifier!r}") from e
    if algorithm != ALGORITHM:
        raise CryptoError(f"Algoritmo não suportado: {algorithm!r}")
    return KeyPair(
        identifier=identifier,
        private_key=import_jwk(private_jwk, "private"),
        public_key=import_jwk(public_jwk, "public"),
        algorithm=algorithm,
    )


def public_key_pem(key: rsa.RSAPublicKey) -> str:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def generate_key_pair(identifier: str, key_size: int = 2048) -> KeyPair:
    try:
        private_key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT, key_size=key_size
        )
    except (TypeError, ValueError) as e:
        raise CryptoError(f"Falha ao gerar par de chaves: {e}") from e
    return KeyPair(identifier, private_key, private_key.public_key())


# ---------------------------------------------------------------------------
# Key Manager
# ---------------------------------------------------------------------------


class KeyManager:
    def __init__(self, kv: KvStore, key_size: int = 2048) -> None:
        self.kv = kv
        self.key_size = key_size

    @staticmethod
    def storage_key(identifier: str) -> tuple[str, str]:
        return ("keys", identifier)

    async def load_key_pairs(self, identifier: str) -> list[KeyPair] | None:
        entry = await self.kv.get(self.storage_key(identifier))
        if entry is None:
            return None
        if not isinstance(entry, list) or not entry:
            raise CryptoError(f"Registro de chaves corrompido para {identifier!r}")
        return [import_key_pair(identifier, item) for item in entry]

    async def get_or_create_key_pairs(self, identifier: str) -> list[KeyPair]:
        """
        Devolve os pares persistidos do actor, gerando um na primeira chamada.

        Duas chamadas concorrentes podem gerar um par cada, mas só uma grava:
        `set_if_absent` é atômico no armazenamento, e quem perde a corrida
        descarta o seu par e relê o do vencedor.
        """
        pairs = await self.load_key_pairs(identifier)
        if pairs is not None:
            return pairs

        log.info(f"Nenhum par de chaves para {identifier!r}, gerando um novo")
        # RSA bloqueia a CPU por dezenas de ms; não travar o event loop
        pair = await asyncio.to_thread(generate_key_pair, identifier, self.key_size)

        stored = await self.kv.set_if_absent(
            self.storage_key(identifier), [export_key_pair(pair)]
        )
        if stored:
            return [pair]

        log.info(f"Par de chaves de {identifier!r} criado por outra chamada, reutilizando")
        pairs = await self.load_key_pairs(identifier)
        if pairs is None:
            raise CryptoError(f"Par de chaves de {identifier!r} sumiu durante a criação")
        return pairs
