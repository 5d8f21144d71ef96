"""
Relay request signing

Relays authenticate searchers by a signature over each request body, carried
in the X-Flashbots-Signature header as "<address>:<signature>". The key used
here is the searcher identity (reputation) key; it never signs transactions.
"""

import logging
from typing import Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .errors import SigningError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Flashbots-Signature"


class RelaySigner:
    """Produces the relay authentication header for a request body"""

    def __init__(self, identity: Union[str, bytes, LocalAccount]):
        """
        Args:
            identity: Searcher identity private key (hex string or bytes) or a LocalAccount

        Raises:
            SigningError: If the key is not a valid secp256k1 private key
        """
        if isinstance(identity, LocalAccount):
            self._account = identity
        else:
            try:
                self._account = Account.from_key(identity)
            except Exception as e:
                # error text may contain key material
                raise SigningError(f"Invalid searcher identity key: {type(e).__name__}") from None

        logger.debug(f"Relay signer ready for identity {self._account.address}")

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, body: str) -> str:
        """
        Sign a serialized request body

        The signed message is the EIP-191 personal message of the 0x-prefixed
        keccak-256 hex digest of the body.

        Args:
            body: Exact body that will be transmitted

        Returns:
            0x-prefixed signature hex
        """
        digest = Web3.to_hex(Web3.keccak(text=body))
        signed = self._account.sign_message(encode_defunct(text=digest))
        return Web3.to_hex(signed.signature)

    def signature_header(self, body: str) -> str:
        """Header value "<address>:<signature>" for a request body"""
        return f"{self.address}:{self.sign(body)}"

    def headers(self, body: str) -> dict:
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: self.signature_header(body),
        }
