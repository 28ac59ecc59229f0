from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import jwt
from common.utils import format_iso, utc_now

from portal.errors import IdentityNotFound, InvalidToken, TokenRevoked
from portal.models import AuthenticatedIdentity, TokenKind, TokenMetadata, TokenPair
from portal.repository import PortalRepository

LOGGER = logging.getLogger("jobsearch.portal.auth")
REQUIRED_CLAIMS = ["sub", "jti", "exp", "iat", "typ"]

SecretResolver = Callable[[TokenKind], str]


def static_secrets(access_secret: str, refresh_secret: str) -> SecretResolver:
    secrets_by_kind = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}

    def resolve(kind: TokenKind) -> str:
        return secrets_by_kind[kind]

    return resolve


class TokenAuthenticator:
    """Issues and verifies signed tokens and resolves them to identities.

    HTTP routes and the chat handshake both go through ``authenticate`` so the
    decision never depends on the transport.
    """

    def __init__(
        self,
        repository: PortalRepository,
        secret_resolver: SecretResolver,
        *,
        access_ttl: timedelta = timedelta(hours=1),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.secret_resolver = secret_resolver
        self.ttls = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}
        self.algorithm = algorithm
        self.clock = clock

    def issue_token(self, user_id: str, kind: TokenKind = TokenKind.ACCESS) -> str:
        issued_at = self.clock()
        claims = {
            "sub": user_id,
            "jti": uuid.uuid4().hex,
            "typ": kind.value,
            "iat": issued_at,
            "exp": issued_at + self.ttls[kind],
        }
        return jwt.encode(claims, self.secret_resolver(kind), algorithm=self.algorithm)

    def issue_token_pair(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_token(user_id, TokenKind.ACCESS),
            refresh_token=self.issue_token(user_id, TokenKind.REFRESH),
        )

    def decode(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> dict:
        if not token:
            raise InvalidToken("missing token")
        try:
            claims = jwt.decode(
                token,
                self.secret_resolver(kind),
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc)) from exc
        if claims.get("typ") != kind.value:
            raise InvalidToken("wrong token type")
        return claims

    def authenticate(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> AuthenticatedIdentity:
        claims = self.decode(token, kind)
        if self.repository.is_token_revoked(claims["jti"]):
            raise TokenRevoked()
        identity = self.repository.get_identity(str(claims["sub"]))
        if identity is None:
            raise IdentityNotFound()
        return AuthenticatedIdentity(
            identity=identity,
            token=TokenMetadata(
                token_id=claims["jti"],
                expires_at=format_iso(datetime.fromtimestamp(claims["exp"], tz=UTC)),
            ),
        )

    def sign_out(self, access_token: str, refresh_token: str) -> AuthenticatedIdentity:
        authenticated = self.authenticate(access_token, TokenKind.ACCESS)
        refresh_claims = self.decode(refresh_token, TokenKind.REFRESH)
        if str(refresh_claims["sub"]) != authenticated.identity.user_id:
            raise InvalidToken("refresh token belongs to another identity")

        self.repository.revoke_tokens(
            [
                (
                    authenticated.token.token_id,
                    datetime.fromisoformat(authenticated.token.expires_at),
                ),
                (
                    refresh_claims["jti"],
                    datetime.fromtimestamp(refresh_claims["exp"], tz=UTC),
                ),
            ]
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "signed_out",
                    "user_id": authenticated.identity.user_id,
                    "revoked": [authenticated.token.token_id, refresh_claims["jti"]],
                }
            )
        )
        return authenticated

    def refresh(self, refresh_token: str) -> str:
        authenticated = self.authenticate(refresh_token, TokenKind.REFRESH)
        return self.issue_token(authenticated.identity.user_id, TokenKind.ACCESS)
