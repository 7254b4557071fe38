import base64
import json
import logging
import time
from typing import Optional

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
CLOCK_SKEW_SECONDS = 60

# Cache for Google's public keys
_cached_keys: Optional[dict] = None


async def get_google_public_keys(refresh: bool = False) -> Optional[dict]:
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys and not refresh:
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
        return None

    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
        return None

    _cached_keys = response.json()
    logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
    return _cached_keys


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _check_claims(claims: dict, now: Optional[float] = None) -> None:
    now = now if now is not None else time.time()

    if claims.get("aud") != FIREBASE_PROJECT_ID:
        logger.error("❌ Token audience mismatch")
        raise HTTPException(status_code=401, detail="Invalid token audience")

    if claims.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        logger.error("❌ Token issuer mismatch")
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    if claims.get("exp", 0) < now:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )

    if claims.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
        logger.warning("⚠️ Token issued in the future")
        raise HTTPException(status_code=401, detail="Invalid token")

    if "auth_time" not in claims:
        raise HTTPException(status_code=401, detail="Invalid token claims")


async def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token: RS256 signature against Google's published
    certificates, then audience, issuer and expiry claims.
    """
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise HTTPException(status_code=401, detail="Invalid token format")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64url_decode(header_b64))
        claims = json.loads(_b64url_decode(payload_b64))
        signature = _b64url_decode(signature_b64)
    except ValueError as e:
        logger.error(f"❌ Failed to decode token: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token encoding") from e

    if header.get("alg") != "RS256":
        raise HTTPException(status_code=401, detail="Invalid token algorithm")

    kid = header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Token missing key ID")

    public_keys = await get_google_public_keys()
    if not public_keys or kid not in public_keys:
        # Google rotates keys; refetch once before giving up
        public_keys = await get_google_public_keys(refresh=True)
        if not public_keys or kid not in public_keys:
            logger.error(f"❌ Key ID {kid} not found in public keys after retry")
            raise HTTPException(status_code=401, detail="Unable to verify token signature")

    cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())
    try:
        cert.public_key().verify(
            signature,
            f"{header_b64}.{payload_b64}".encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature as e:
        logger.error(f"❌ Token signature verification failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token signature") from e

    _check_claims(claims)
    return claims


def find_or_create_user(db: Session, claims: dict) -> User:
    """Map verified token claims to a local user, creating one on first sign-in"""
    # Firebase ID tokens use 'sub' as the user ID claim
    firebase_uid = claims.get("sub") or claims.get("user_id") or claims.get("uid")
    if not firebase_uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    email = claims.get("email") or ""
    name = claims.get("name", "")

    user = db.query(User).filter(User.firebase_uid == firebase_uid).first()
    if user:
        return user

    # Same email under another Firebase UID (e.g. password account later signing in with Google)
    if email:
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            logger.info(f"🔄 Migrating user {email} to Firebase UID {firebase_uid}")
            existing.firebase_uid = firebase_uid
            if name and not existing.full_name:
                existing.full_name = name
            db.commit()
            db.refresh(existing)
            return existing

    logger.info(f"🆕 Creating new user: {email}")
    user = User(firebase_uid=firebase_uid, email=email, full_name=name)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"❌ Email {email} was taken by another account (race condition)")
        raise HTTPException(
            status_code=409,
            detail="This email is already registered. Please sign in with your existing account.",
        ) from e
    db.refresh(user)
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from Firebase token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = await verify_firebase_token(credentials.credentials)
    user = find_or_create_user(db, claims)
    logger.debug(f"✅ User authenticated: {user.email}")
    return user
