from .blind_rsa import BankPublicKey, unblind
from .errors import MalformedToken, ProtocolError, TokenAlreadySigned
from typing import List, Optional, Tuple, Union
from enum import Enum

from dataclasses import dataclass, field

# Share/commitment pairs per side of a token
COIN_RIS_LENGTH = 20
# Every recombined left/right share pair starts with this
IDENTITY_MARKER = "IdentStr:"
# Tag opening the canonical token string
BANK_TAG = "ELECTRONIC_BANK"
# Candidates the agency expects in a fair-signing session
NUM_COPIES_REQUIRED = 10

DELIMITER = "-"
SEPARATOR = ","

# Public token fields, set once at issuance
FIXED_TOKEN_FIELDS = frozenset({
    "amount",
    "id",
    "bank_modulus",
    "bank_exponent",
    "left_commitments",
    "right_commitments",
    "blinded_digest",
})


class Side(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class CanonicalToken:
    """
    Structured form of the canonical token string

        {BANK_TAG}-{amount}-{id}-{left commitments}-{right commitments}

    This string, not a live Token, is what gets hashed, signed and parsed.
    """
    amount: int
    id: str
    left_commitments: Tuple[str, ...]
    right_commitments: Tuple[str, ...]

    def __str__(self):
        return DELIMITER.join([
            BANK_TAG,
            str(self.amount),
            self.id,
            SEPARATOR.join(self.left_commitments),
            SEPARATOR.join(self.right_commitments),
        ])

    def commitments(self, side: Side) -> Tuple[str, ...]:
        match side:
            case Side.LEFT:
                return self.left_commitments
            case Side.RIGHT:
                return self.right_commitments
            case _:
                raise ValueError(f"unrecognized side {side!r}")

    @classmethod
    def parse(cls, s: str):
        """
        Parses a canonical token string.

        Parameters:
            s (str): String representation of a token.

        Returns:
            CanonicalToken: The parsed record.

        Raises:
            MalformedToken: wrong tag, bad amount or id, or fewer than
                COIN_RIS_LENGTH commitments on either side.
        """
        fields = s.split(DELIMITER)
        if len(fields) != 5:
            raise MalformedToken(f"expected 5 fields, got {len(fields)}")
        tag, amount, token_id, left, right = fields
        if tag != BANK_TAG:
            raise MalformedToken(f"Invalid identity string: {tag} received, but {BANK_TAG} expected")
        if not (amount.isascii() and amount.isdigit()) or amount.startswith("0"):
            raise MalformedToken(f"invalid amount {amount!r}")
        if not token_id:
            raise MalformedToken("missing token id")
        lh = tuple(left.split(SEPARATOR))
        rh = tuple(right.split(SEPARATOR))
        if len(lh) < COIN_RIS_LENGTH or len(rh) < COIN_RIS_LENGTH:
            raise MalformedToken(
                f"expected {COIN_RIS_LENGTH} commitments per side, got {len(lh)} and {len(rh)}"
            )
        return cls(int(amount), token_id, lh, rh)


@dataclass
class Token:
    """
    A coin as held by its owner. Shares and the blinding factor are the
    owner's secrets; everything else is public.

    Fields are filled in a fixed order and only once: shares and commitments,
    then the blinded digest (both at issuance), then the signature.
    """
    amount: int
    id: str
    bank_modulus: int
    bank_exponent: int
    left_shares: List[bytes] = field(repr=False)
    right_shares: List[bytes] = field(repr=False)
    left_commitments: Tuple[str, ...]
    right_commitments: Tuple[str, ...]
    blinded_digest: int
    blinding_factor: int = field(repr=False)

    signature: Optional[int] = None

    def __setattr__(self, name, value):
        if name in FIXED_TOKEN_FIELDS and name in self.__dict__:
            raise AttributeError(f"token {name} cannot change after issuance")
        if name == "signature" and self.__dict__.get("signature") is not None:
            raise TokenAlreadySigned(f"token {self.id} already carries a signature")
        super().__setattr__(name, value)

    @property
    def canonical(self) -> CanonicalToken:
        return CanonicalToken(
            amount=self.amount,
            id=self.id,
            left_commitments=tuple(self.left_commitments),
            right_commitments=tuple(self.right_commitments),
        )

    @property
    def bank_public_key(self) -> BankPublicKey:
        return BankPublicKey(n=self.bank_modulus, e=self.bank_exponent)

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def __str__(self):
        return str(self.canonical)

    def unblind(self, blind_signature: int) -> int:
        """
        Removes the blinding factor from the bank's blind signature. Can only
        happen once per token.
        """
        if self.signature is not None:
            raise TokenAlreadySigned(f"token {self.id} already carries a signature")
        self.signature = unblind(blind_signature, self.bank_modulus, self.blinding_factor)
        return self.signature

    def reveal(self, side: Side) -> List[bytes]:
        # owner's answer to a verifier's challenge
        match side:
            case Side.LEFT:
                return list(self.left_shares)
            case Side.RIGHT:
                return list(self.right_shares)
            case _:
                raise ValueError(f"unrecognized side {side!r}")


@dataclass(frozen=True)
class RevealRecord:
    token_id: str
    side: Side
    shares: Tuple[bytes, ...] = field(repr=False)


@dataclass(frozen=True)
class SpendResult:
    record: Optional[RevealRecord] = None
    error: Optional[ProtocolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.record is not None

    def unwrap(self) -> RevealRecord:
        if self.error is not None:
            raise self.error
        assert self.record is not None, "empty spend result"
        return self.record


@dataclass(frozen=True)
class OwnerCheated:
    token_id: str
    identity: str


@dataclass(frozen=True)
class VerifierCheated:
    token_id: str


Verdict = Union[OwnerCheated, VerifierCheated]


@dataclass(frozen=True)
class BlindEnvelope:
    plaintext: str
    blinding_factor: int = field(repr=False)
    blinded: int


@dataclass(frozen=True)
class Disclosure:
    plaintext: str
    blinding_factor: int = field(repr=False)


@dataclass(frozen=True)
class SigningResult:
    index: int
    blind_signature: Optional[int] = None
    error: Optional[ProtocolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.blind_signature is not None
