from dataclasses import dataclass, field
from typing import Optional, Tuple

from Crypto.PublicKey import RSA
from Crypto.Util.number import GCD, getRandomRange, inverse

from .hashing import message_to_hash

# Default modulus size for a bank or agency key
KEY_SIZE = 2048


@dataclass(frozen=True)
class BankPublicKey:
    n: int
    e: int


@dataclass(frozen=True)
class BankKey:
    """
    The signer's RSA key pair. Built once at startup and handed explicitly to
    every role that needs it; never regenerated mid-session.
    """
    n: int
    e: int
    d: int = field(repr=False)

    @classmethod
    def generate(cls, bits: int = KEY_SIZE):
        key = RSA.generate(bits)
        return cls(n=int(key.n), e=int(key.e), d=int(key.d))

    @property
    def public(self) -> BankPublicKey:
        return BankPublicKey(n=self.n, e=self.e)


def key_generation(bits: int = KEY_SIZE) -> BankKey:
    return BankKey.generate(bits)


def random_blinding_factor(n: int) -> int:
    while True:
        r = getRandomRange(2, n)
        if GCD(r, n) == 1:
            return r


def blind(
    message: str,
    n: int,
    e: int,
    blinding_factor: Optional[int] = None,
) -> Tuple[int, int]:
    """
    Blinds the digest of a message so that the signer cannot read it.

    Parameters:
        message (str): The message to be signed
        n (int): Signer's modulus
        e (int): Signer's public exponent
        blinding_factor (Optional[int]): Re-use a known factor, e.g. to re-derive
            a blinded form that was disclosed. A fresh one is drawn otherwise.

    Returns:
        Tuple[int, int]: The blinded digest and the blinding factor.
    """
    m = message_to_hash(message) % n
    r = blinding_factor if blinding_factor is not None else random_blinding_factor(n)
    return (m * pow(r, e, n)) % n, r


def sign(blinded: int, key: BankKey) -> int:
    if not 0 <= blinded < key.n:
        raise ValueError("blinded message out of range for this key")
    return pow(blinded, key.d, key.n)


def unblind(blind_signature: int, n: int, blinding_factor: int) -> int:
    return (blind_signature * inverse(blinding_factor, n)) % n


def verify(signature: Optional[int], message: str, n: int, e: int) -> bool:
    if signature is None or not 0 < signature < n:
        return False
    return pow(signature, e, n) == message_to_hash(message) % n
