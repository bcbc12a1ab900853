"""NIP-05 ``/.well-known/nostr.json`` lookups backed by registered DIDs.

A name maps to the hex public key of the first verification method whose
type is SchnorrSecp256k1VerificationKey2019 and whose id mentions "nostr".
Only base16 multibase keys are served.
"""

import logging
from typing import Dict, Optional
from urllib.parse import quote_plus

import multibase

from .document import DIDDocument
from .exceptions import DIDWebError
from .storage import DIDStore

log = logging.getLogger(__name__)

NOSTR_KEY_TYPE = "SchnorrSecp256k1VerificationKey2019"
MULTIBASE_BASE16 = "base16"


def decode_base16_multibase(value: str) -> Optional[bytes]:
    """Decode a base16 multibase string, or None for any other encoding."""
    if not value or (len(value) - 1) % 2:
        return None
    try:
        if multibase.get_codec(value).encoding != MULTIBASE_BASE16:
            return None
        data = multibase.decode(value)
    except ValueError as e:
        log.debug(f"Undecodable multibase key {value[:8]}: {e}")
        return None
    # Leading zero bytes are significant in a fixed-width key
    return data.rjust((len(value) - 1) // 2, b"\x00")


def nostr_pubkey(document: DIDDocument) -> Optional[str]:
    for vm in document.verification_method:
        if vm.type.lower() != NOSTR_KEY_TYPE.lower() or "nostr" not in vm.id.lower():
            continue
        data = decode_base16_multibase(vm.public_key_multibase or "")
        if data is None:
            return None
        return data.hex()
    return None


def lookup_names(store: DIDStore, domain: str, name: Optional[str]) -> Dict[str, Dict[str, str]]:
    """Build the nostr.json body for ``name`` under ``domain``.

    Unknown names and unusable keys yield an empty ``names`` mapping.
    """
    names: Dict[str, str] = {}
    if not name:
        return {"names": names}

    try:
        document = store.resolve(f"{domain}:{quote_plus(name, safe='')}")
    except DIDWebError as e:
        log.debug(f"No nostr identity for {name}: {e.code}")
        return {"names": names}

    pubkey = nostr_pubkey(document)
    if pubkey is not None:
        names[name] = pubkey
    return {"names": names}
