"""
Key-holder credential files and DKG ceremony output.

A credential file holds one key-holder's secp256k1 share and Ed25519 signing
identity as hex JSON:

    {"index": 1, "sk": <64 hex>, "commitment": <66 hex>,
     "ed_sk": <64 hex>, "ed_pk": <64 hex>}
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

from curves.ed25519 import Ed25519Keypair
from curves.secp256k1 import Point, scalar_from_hex, scalar_to_hex

from .dkg import DKGResult, KeyHolderShare

logger = logging.getLogger(__name__)

COMBINED_PUBKEY_FILE = "combined_pubkey.json"


class CredentialError(ValueError):
    """Credential file is missing fields or inconsistent"""
    pass


@dataclass
class KeyHolderCredential:
    share: KeyHolderShare
    identity: Ed25519Keypair

    @property
    def index(self) -> int:
        return self.share.index

    def to_dict(self) -> Dict[str, Union[int, str]]:
        return {
            'index': self.share.index,
            'sk': scalar_to_hex(self.share.secret_scalar),
            'commitment': self.share.commitment.hex(),
            'ed_sk': self.identity.seed_hex(),
            'ed_pk': self.identity.public_key.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "KeyHolderCredential":
        try:
            share = KeyHolderShare(
                index=int(data['index']),
                secret_scalar=scalar_from_hex(data['sk']),
                commitment=Point.from_hex(data['commitment']),
            )
            identity = Ed25519Keypair.from_hex(data['ed_sk'])
        except (KeyError, TypeError, ValueError) as e:
            raise CredentialError(f"Invalid key-holder credential: {e}") from e

        ed_pk = data.get('ed_pk')
        if not isinstance(ed_pk, str) or identity.public_key.hex() != ed_pk.lower():
            raise CredentialError(
                f"ed_pk does not match ed_sk for key-holder {share.index}")
        return cls(share, identity)

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        os.chmod(path, 0o600)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "KeyHolderCredential":
        with open(path, 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise CredentialError(f"{path} is not valid JSON: {e}") from e
        return cls.from_dict(data)


def credentials_from_result(result: DKGResult) -> List[KeyHolderCredential]:
    return [KeyHolderCredential(share, result.identity_for(share.index))
            for share in result.shares]


def write_ceremony_output(result: DKGResult, out_dir: Union[str, Path]) -> List[Path]:
    """Write kh{i}.json per key-holder plus combined_pubkey.json"""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for credential in credentials_from_result(result):
        written.append(credential.save(out_dir / f"kh{credential.index}.json"))

    summary_path = out_dir / COMBINED_PUBKEY_FILE
    with open(summary_path, 'w') as f:
        json.dump(result.summary(), f, indent=2)
    written.append(summary_path)

    logger.info(f"Wrote {len(written)} ceremony files to {out_dir}")
    return written


def load_credentials_dir(directory: Union[str, Path]) -> List[KeyHolderCredential]:
    """Load every kh*.json in a directory, ordered by index"""
    directory = Path(directory)
    credentials = [KeyHolderCredential.load(p) for p in sorted(directory.glob("kh*.json"))]
    credentials.sort(key=lambda c: c.index)
    return credentials
