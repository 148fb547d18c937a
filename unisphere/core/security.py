import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext
from jose import JWTError, jwt, ExpiredSignatureError

from unisphere.config import settings
from unisphere.core.errors import InvalidFormat, InvalidToken, TokenExpired

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# header.payload.signature, base64url parts
_BARE_JWT = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*$")


def new_jti() -> str:
    return uuid.uuid4().hex


def new_refresh_token() -> str:
    return str(uuid.uuid4())


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # malformed stored hash
        return False


def extract_bearer_token(header: str | None) -> str:
    """Accept `Bearer <jwt>` or a bare three-part token."""
    if not header:
        raise InvalidFormat("missing authorization header")
    header = header.strip()
    scheme, _, rest = header.partition(" ")
    if scheme.lower() == "bearer" and rest.strip():
        return rest.strip()
    if _BARE_JWT.match(header):
        return header
    raise InvalidFormat()


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    email: str
    role: str
    jti: str
    expires_at: datetime


class JWTService:
    """Signs and validates access tokens.

    The algorithm is fixed here; tokens signed with any other one are rejected.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = "unisphere.app",
        access_ttl: timedelta = timedelta(hours=1),
    ):
        if not secret_key:
            raise ValueError("secret key must not be empty")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.access_ttl = access_ttl

    def create_access_token(self, user_id: int, email: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "roleType": role,
            "iss": self.issuer,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int((now + self.access_ttl).timestamp()),
            "sub": str(user_id),
            "jti": new_jti(),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> AccessClaims:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidToken() from exc
        if header.get("alg") != self.algorithm:
            raise InvalidToken("unexpected signing method")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm], issuer=self.issuer)
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidToken() from exc

        try:
            user_id = int(payload["userId"])
            if payload.get("sub") != str(user_id):
                raise InvalidToken("subject mismatch")
            return AccessClaims(
                user_id=user_id,
                email=payload["email"],
                role=payload["roleType"],
                jti=payload["jti"],
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken("invalid token payload") from exc


def build_jwt_service() -> JWTService:
    return JWTService(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        issuer=settings.TOKEN_ISSUER,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
