"""
app/errors.py

Taxonomia de erros do núcleo de federação.

- `VerificationError`  — atividade recebida inválida ou assinatura não verificável.
                         Nunca propaga para além do inbox: vira 401 e um log.
- `PersistenceError`   — falha no armazenamento chave-valor. Propaga para o request.
- `DeliveryError`      — falha ao entregar uma atividade a um peer.
- `CryptoError`        — falha ao gerar, importar ou usar uma chave. Fatal para o request.

"Não encontrado" não é erro: o resolver devolve `None` e a rota responde 404.
"""


class FederationError(Exception):
    pass


class VerificationError(FederationError):
    """A assinatura ou o conteúdo de uma atividade recebida não pôde ser validado."""


class VerificationFormatError(VerificationError):
    """O formato da assinatura é inválido (não apenas a assinatura em si)."""


class PersistenceError(FederationError):
    pass


class DeliveryError(FederationError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CryptoError(FederationError):
    pass
