"""
Anonymous coins with double-spend identification.

The owner's identity is split into COIN_RIS_LENGTH one-time-pad pairs. Each
spend opens one side of every pair, so a single spend shows nothing, while two
spends that opened different sides let the bank XOR the halves back together.
"""

import logging
import uuid
from typing import Dict, List, Optional, Tuple

from Crypto.Random import get_random_bytes
from Crypto.Random.random import StrongRandom
from Crypto.Util.strxor import strxor

from .blind_rsa import BankKey, BankPublicKey, blind, sign, verify
from .errors import (
    EmptyIdentity,
    InvalidAmount,
    InvalidSignature,
    MalformedToken,
    ShareMismatch,
)
from .hashing import hash_commitment
from .models import (
    COIN_RIS_LENGTH,
    IDENTITY_MARKER,
    CanonicalToken,
    OwnerCheated,
    RevealRecord,
    Side,
    SpendResult,
    Token,
    Verdict,
    VerifierCheated,
)

logger = logging.getLogger(__name__)


def split_identity(identity: str) -> Tuple[bytes, bytes]:
    """
    Splits IDENTITY_MARKER + identity into a random pad and its ciphertext.
    XOR-ing the two halves gives the marked identity back.
    """
    message = (IDENTITY_MARKER + identity).encode("utf-8")
    key = get_random_bytes(len(message))
    return key, strxor(key, message)


class TokenIssuer:
    """Owner-side construction of a coin, ready to be sent to the bank."""

    def __init__(self, bank_public_key: BankPublicKey):
        self.bank_public_key = bank_public_key

    def issue(self, identity: str, amount: int) -> Token:
        """
        Creates a coin worth `amount` that hides `identity`.

        Parameters:
            identity (str): The owner's identity, revealed only on double-spend
            amount (int): Positive number of units

        Returns:
            Token: Shares, commitments and blinded digest filled in; no signature.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")
        if not identity:
            raise EmptyIdentity("identity must not be empty")

        left_shares: List[bytes] = []
        right_shares: List[bytes] = []
        for _ in range(COIN_RIS_LENGTH):
            left, right = split_identity(identity)
            left_shares.append(left)
            right_shares.append(right)

        canonical = CanonicalToken(
            amount=amount,
            id=uuid.uuid4().hex,
            left_commitments=tuple(hash_commitment(s) for s in left_shares),
            right_commitments=tuple(hash_commitment(s) for s in right_shares),
        )
        pk = self.bank_public_key
        blinded, r = blind(str(canonical), pk.n, pk.e)

        logger.info(f"Issued token {canonical.id} worth {amount}")
        return Token(
            amount=amount,
            id=canonical.id,
            bank_modulus=pk.n,
            bank_exponent=pk.e,
            left_shares=left_shares,
            right_shares=right_shares,
            left_commitments=canonical.left_commitments,
            right_commitments=canonical.right_commitments,
            blinded_digest=blinded,
            blinding_factor=r,
        )


class TokenVerifier:
    """
    Merchant accepting coins at a point of sale.

    The side to open is drawn from `rng` once per coin. Anything with a
    `choice` method works; the default is pycryptodome's StrongRandom.
    """

    def __init__(self, bank_public_key: BankPublicKey, rng=None):
        self.bank_public_key = bank_public_key
        self.rng = rng if rng is not None else StrongRandom()

    def accept(self, token: Token) -> SpendResult:
        try:
            canonical = CanonicalToken.parse(str(token))
        except MalformedToken as e:
            logger.warning(f"Rejected malformed token: {e}")
            return SpendResult(error=e)

        # A forger could ship its own key inside the token
        pk = self.bank_public_key
        if token.bank_public_key != pk or not verify(token.signature, str(canonical), pk.n, pk.e):
            logger.warning(f"Invalid signature. Token {canonical.id} rejected.")
            return SpendResult(error=InvalidSignature(f"Invalid signature. Token {canonical.id} rejected."))

        side = self.rng.choice([Side.LEFT, Side.RIGHT])
        logger.debug(f"Requesting {side.value} shares of token {canonical.id}")

        commitments = canonical.commitments(side)
        shares = token.reveal(side)
        for i in range(COIN_RIS_LENGTH):
            if i >= len(shares) or hash_commitment(shares[i]) != commitments[i]:
                logger.warning(f"Token {canonical.id}: hash mismatch at index {i}")
                return SpendResult(error=ShareMismatch(i))

        logger.info(f"Accepted token {canonical.id}")
        return SpendResult(record=RevealRecord(
            token_id=canonical.id,
            side=side,
            shares=tuple(shares[:COIN_RIS_LENGTH]),
        ))


class DoubleSpendAnalyzer:
    """Decides who cheated when the same coin is deposited twice."""

    def __init__(self, marker: str = IDENTITY_MARKER):
        self.marker = marker.encode("utf-8")

    def analyze(self, first: RevealRecord, second: RevealRecord) -> Verdict:
        """
        Compares the shares of two spends of one coin.

        Parameters:
            first (RevealRecord): Shares reported by the first merchant
            second (RevealRecord): Shares reported by the second merchant

        Returns:
            OwnerCheated: if some index was opened on both sides; carries the
                recovered identity.
            VerifierCheated: if no index ever shows both sides, i.e. the same
                reveal was submitted twice.
        """
        if first.token_id != second.token_id:
            raise ValueError(f"records belong to different tokens: {first.token_id} and {second.token_id}")

        for a, b in zip(first.shares, second.shares):
            # same side, or halves that were never one pad
            if a == b or len(a) != len(b):
                continue
            combined = strxor(a, b)
            if combined.startswith(self.marker):
                identity = combined[len(self.marker):].decode("utf-8", errors="replace")
                logger.warning(f"Double spending detected for token {first.token_id}: the owner cheated")
                return OwnerCheated(token_id=first.token_id, identity=identity)

        logger.warning(f"Double spending detected for token {first.token_id}: the merchant cheated")
        return VerifierCheated(token_id=first.token_id)


class SpendLedger:
    """In-memory record of every reveal deposited per token id."""

    def __init__(self, analyzer: Optional[DoubleSpendAnalyzer] = None):
        self.analyzer = analyzer if analyzer is not None else DoubleSpendAnalyzer()
        self._records: Dict[str, List[RevealRecord]] = {}

    def __contains__(self, token_id: str) -> bool:
        return token_id in self._records

    def records(self, token_id: str) -> Tuple[RevealRecord, ...]:
        return tuple(self._records.get(token_id, ()))

    def deposit(self, record: RevealRecord) -> Optional[Verdict]:
        """
        Returns None for the first spend of a token and a verdict against the
        first recorded spend for every later one.
        """
        seen = self._records.setdefault(record.token_id, [])
        seen.append(record)
        if len(seen) == 1:
            return None
        return self.analyzer.analyze(seen[0], record)


class Bank:

    def __init__(self, key: BankKey, ledger: Optional[SpendLedger] = None):
        self.key = key
        self.ledger = ledger if ledger is not None else SpendLedger()

    @property
    def public_key(self) -> BankPublicKey:
        return self.key.public

    def sign(self, blinded_digest: int) -> int:
        return sign(blinded_digest, self.key)

    def withdraw(self, identity: str, amount: int) -> Token:
        # issue, blind-sign and unblind in one go
        token = TokenIssuer(self.public_key).issue(identity, amount)
        token.unblind(self.sign(token.blinded_digest))
        return token

    def deposit(self, record: RevealRecord) -> Optional[Verdict]:
        return self.ledger.deposit(record)
