"""
app/activitypub/signatures.py

Verificação das assinaturas HTTP (draft-cavage, rsa-sha256) que chegam no inbox.

A criptografia fica com o apsig, a mesma biblioteca que o apkit usa para
assinar as entregas (`ActivityPubClient.post(..., sign_with=["draft-cavage"])`).
Aqui fica só a política do servidor:
- (request-target), host e date precisam estar assinados
- em requisições com corpo, o digest também
- o Date só pode se afastar `max_age` segundos do relógio local
"""

from typing import Mapping

from apsig.draft.verify import Verifier
from apsig.exceptions import SignatureError

from app.errors import VerificationError, VerificationFormatError

ACTIVITY_JSON = "application/activity+json"
REQUIRED_HEADERS = {"(request-target)", "host", "date"}


def signature_parts(headers: Mapping[str, str]) -> dict[str, str]:
    value = next((v for k, v in headers.items() if k.lower() == "signature"), None)
    if not value:
        raise VerificationFormatError("Requisição sem header Signature")

    parts = {}
    for item in value.split(","):
        name, sep, raw = item.partition("=")
        if not sep:
            raise VerificationFormatError(f"Parâmetro de assinatura malformado: {item!r}")
        parts[name.strip()] = raw.strip().strip('"')

    for name in ("keyId", "signature"):
        if not parts.get(name):
            raise VerificationFormatError(f"Assinatura sem o campo {name}")
    return parts


def key_id_of(headers: Mapping[str, str]) -> str:
    return signature_parts(headers)["keyId"]


def verify_request(
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: bytes,
    public_key_pem: str,
    max_age: int = 3600,
) -> str:
    """Devolve o keyId da assinatura válida; levanta `VerificationError` se não for."""
    parts = signature_parts(headers)

    # Sem `headers`, o padrão do draft é apenas `date`
    signed = set(parts.get("headers", "date").lower().split())
    required = set(REQUIRED_HEADERS)
    if method.upper() != "GET":
        required.add("digest")
    missing = required - signed
    if missing:
        raise VerificationFormatError(f"Headers fora da assinatura: {', '.join(sorted(missing))}")

    try:
        verifier = Verifier(public_key_pem, method, url, dict(headers), body, clock_skew=max_age)
        return verifier.verify(raise_on_fail=True)
    except SignatureError as e:
        raise VerificationError(str(e)) from e
    except KeyError as e:
        raise VerificationFormatError(f"Header assinado ausente: {e}") from e
    except (TypeError, ValueError) as e:
        raise VerificationFormatError(f"Assinatura inválida: {e}") from e
