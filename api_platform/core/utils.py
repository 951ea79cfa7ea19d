import time
from datetime import datetime
from urllib.parse import urlparse

import inflect
import jwt

_inflect = inflect.engine()


def type_name(collection: str) -> str:
    """Singularize and capitalize a collection name, ie `orders` -> `Order`."""
    singular = _inflect.singular_noun(collection) or collection
    return singular.capitalize()


def collection_from_iri(iri: str) -> str | None:
    """Return the collection segment following `/api/` in a resource IRI."""
    segments = [segment for segment in urlparse(iri).path.split("/") if segment]
    if "api" not in segments:
        return None
    index = segments.index("api")
    if index + 1 >= len(segments):
        return None
    return segments[index + 1]


def resource_path(collection: str, id_or_path) -> str:
    id_or_path = str(id_or_path)
    if "/api" in id_or_path:
        return id_or_path
    return f"/api/{collection}/{id_or_path}"


def now_timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def token_claims(token: str) -> dict:
    # the signature is checked by the backend, we only read the claims
    return jwt.decode(token, options={"verify_signature": False})


def seconds_until_refresh(token: str, margin: float, now: float | None = None) -> float:
    """Seconds to wait before renewing `token`, ie its expiry minus `margin`."""
    if now is None:
        now = time.time()
    return token_claims(token)["exp"] - margin - now
