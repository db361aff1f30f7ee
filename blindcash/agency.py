"""
Cut-and-choose fair blind signing.

The requester blinds several candidate documents. The agency keeps one of
them sealed, has every other one opened and re-derives its blinded form, and
signs the sealed one only if every opened candidate checks out.
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from Crypto.Random.random import StrongRandom

from .blind_rsa import BankKey, BankPublicKey, blind, sign, unblind, verify
from .errors import (
    CandidateCountError,
    CandidateMismatch,
    InvalidContent,
    SessionStateError,
)
from .models import NUM_COPIES_REQUIRED, BlindEnvelope, Disclosure, SigningResult

logger = logging.getLogger(__name__)

DOCUMENT_PATTERN = re.compile(
    r"^The bearer of this signed document, .+, has full diplomatic immunity\.$"
)


def make_document(cover_name: str) -> str:
    return f"The bearer of this signed document, {cover_name}, has full diplomatic immunity."


def diplomatic_immunity_check(plaintext: str) -> bool:
    return DOCUMENT_PATTERN.match(plaintext) is not None


class SessionState(Enum):
    AWAITING_CANDIDATES = 0
    INDEX_CHOSEN = 1
    AWAITING_DISCLOSURES = 2
    VERIFYING = 3
    SIGNED = 4
    REJECTED = 5

    @property
    def is_terminal(self):
        return self in (SessionState.SIGNED, SessionState.REJECTED)


class SigningSession:
    """
    One cut-and-choose exchange with a requester.

    Phases must be called in order: submit -> request_disclosures ->
    verify_and_sign. A session ends SIGNED or REJECTED and cannot be reused;
    a rejected requester starts over with fresh candidates.
    """

    def __init__(
        self,
        key: BankKey,
        rng,
        copies: int = NUM_COPIES_REQUIRED,
        content_check: Optional[Callable[[str], bool]] = None,
    ):
        self.key = key
        self.rng = rng
        self.copies = copies
        self.content_check = content_check

        self.state = SessionState.AWAITING_CANDIDATES
        self.sealed_index: Optional[int] = None
        self._blinded: List[int] = []

    def _expect(self, state: SessionState):
        if self.state != state:
            raise SessionStateError(f"session is {self.state.name}, expected {state.name}")

    @property
    def opened_indices(self) -> List[int]:
        if self.sealed_index is None:
            raise SessionStateError("no index chosen yet")
        return [i for i in range(self.copies) if i != self.sealed_index]

    def submit(self, blinded_forms: Sequence[int]) -> int:
        """
        Receives the blinded candidates and picks the one to keep sealed.

        Returns:
            int: The sealed index, final for this session.
        """
        self._expect(SessionState.AWAITING_CANDIDATES)
        if len(blinded_forms) != self.copies:
            raise CandidateCountError(
                f"There must be {self.copies} documents, but I only received {len(blinded_forms)}"
            )
        for i, b in enumerate(blinded_forms):
            if not 0 <= b < self.key.n:
                raise ValueError(f"blinded document {i} is out of range")

        self._blinded = list(blinded_forms)
        self.sealed_index = self.rng.randrange(self.copies)
        self.state = SessionState.INDEX_CHOSEN
        logger.debug(f"Selected document index {self.sealed_index}")
        return self.sealed_index

    def request_disclosures(self) -> List[int]:
        self._expect(SessionState.INDEX_CHOSEN)
        self.state = SessionState.AWAITING_DISCLOSURES
        return self.opened_indices

    def verify_and_sign(self, disclosures: Mapping[int, Disclosure]) -> SigningResult:
        """
        Checks every opened candidate and signs the sealed one if all of them
        re-derive their submitted blinded form.

        Parameters:
            disclosures (Mapping[int, Disclosure]): plaintext and blinding
                factor for each opened index. An entry for the sealed index is ignored.

        Returns:
            SigningResult: The blind signature of the sealed candidate, or the
                CandidateMismatch naming the first opened index that failed.
        """
        self._expect(SessionState.AWAITING_DISCLOSURES)
        self.state = SessionState.VERIFYING

        try:
            error = self._check(disclosures)
        except Exception:
            # a session never stops short of a verdict
            self.state = SessionState.REJECTED
            raise
        if error is not None:
            self.state = SessionState.REJECTED
            logger.warning(f"Rejected signing request: {error}")
            return SigningResult(index=self.sealed_index, error=error)

        blind_signature = sign(self._blinded[self.sealed_index], self.key)
        self.state = SessionState.SIGNED
        logger.info(f"Signed document {self.sealed_index}")
        return SigningResult(index=self.sealed_index, blind_signature=blind_signature)

    def _check(self, disclosures: Mapping[int, Disclosure]) -> Optional[CandidateMismatch]:
        for i in self.opened_indices:
            disclosure = disclosures.get(i)
            if disclosure is None:
                return CandidateMismatch(i, f"Document {i} was not disclosed")
            try:
                if self.content_check is not None and not self.content_check(disclosure.plaintext):
                    return InvalidContent(i)
                blinded, _ = blind(disclosure.plaintext, self.key.n, self.key.e, disclosure.blinding_factor)
            except (TypeError, ValueError, AttributeError) as e:
                return CandidateMismatch(i, f"Document {i} could not be re-blinded: {e}")
            if blinded != self._blinded[i]:
                return CandidateMismatch(i)
        return None


class FairSigningCoordinator:
    """The agency: holds the signing key and opens sessions against it."""

    def __init__(
        self,
        key: BankKey,
        rng=None,
        copies: int = NUM_COPIES_REQUIRED,
        content_check: Optional[Callable[[str], bool]] = None,
    ):
        if copies < 2:
            raise ValueError("cut-and-choose needs at least 2 candidates")
        self.key = key
        self.rng = rng if rng is not None else StrongRandom()
        self.copies = copies
        self.content_check = content_check

    @property
    def public_key(self) -> BankPublicKey:
        return self.key.public

    def open_session(self) -> SigningSession:
        return SigningSession(self.key, self.rng, self.copies, self.content_check)

    def sign(self, blinder: "CandidateBlinder") -> SigningResult:
        # whole exchange in-process
        session = self.open_session()
        session.submit(blinder.blinded_forms())
        opened = session.request_disclosures()
        return session.verify_and_sign(blinder.disclose(opened))


class CandidateBlinder:
    """
    The requester: blinds each candidate with its own fresh factor and keeps
    the sealed candidate's factor to itself.

    A blinder is good for a single session. Once candidates have been opened
    their blinded forms must not be submitted again.
    """

    def __init__(self, bank_public_key: BankPublicKey, messages: Sequence[str]):
        if len(messages) < 2:
            raise CandidateCountError("cut-and-choose needs at least 2 candidates")
        self.bank_public_key = bank_public_key
        self.sealed_index: Optional[int] = None
        self._disclosed = False

        n, e = bank_public_key.n, bank_public_key.e
        self.envelopes: List[BlindEnvelope] = []
        used = set()
        for message in messages:
            blinded, r = blind(message, n, e)
            while r in used:
                blinded, r = blind(message, n, e)
            used.add(r)
            self.envelopes.append(BlindEnvelope(plaintext=message, blinding_factor=r, blinded=blinded))

    def blinded_forms(self) -> List[int]:
        if self._disclosed:
            raise SessionStateError("candidates were already opened; start over with fresh blinding factors")
        return [env.blinded for env in self.envelopes]

    def disclose(self, indices: Iterable[int]) -> Dict[int, Disclosure]:
        """
        Opens every requested candidate. Exactly one index must stay sealed.
        """
        if self._disclosed:
            raise SessionStateError("candidates were already opened")
        everything = set(range(len(self.envelopes)))
        opened = set(indices)
        if not opened <= everything or len(everything - opened) != 1:
            raise SessionStateError("exactly one candidate must stay sealed")

        (self.sealed_index,) = everything - opened
        self._disclosed = True
        return {
            i: Disclosure(plaintext=env.plaintext, blinding_factor=env.blinding_factor)
            for i, env in enumerate(self.envelopes)
            if i in opened
        }

    @property
    def sealed(self) -> BlindEnvelope:
        if self.sealed_index is None:
            raise SessionStateError("nothing sealed yet")
        return self.envelopes[self.sealed_index]

    def unblind(self, result: SigningResult) -> int:
        if result.error is not None:
            raise result.error
        if self.sealed_index is None or result.index != self.sealed_index:
            raise SessionStateError(f"signature is for document {result.index}, sealed document is {self.sealed_index}")
        return unblind(result.blind_signature, self.bank_public_key.n, self.sealed.blinding_factor)

    def verify(self, signature: int) -> bool:
        pk = self.bank_public_key
        return verify(signature, self.sealed.plaintext, pk.n, pk.e)
