from dataclasses import replace

from Crypto.Util.strxor import strxor
import pytest

from blindcash import *
from blindcash.hashing import hash_commitment
from conftest import ScriptedRandom

MARKER = IDENTITY_MARKER.encode()


def test_commitments_match_shares(bank):
    for identity, amount in [("alice", 20), ("bob", 1), ("zoë", 500)]:
        token = bank.withdraw(identity, amount)
        assert len(token.left_shares) == len(token.right_shares) == COIN_RIS_LENGTH
        for share, commitment in zip(token.left_shares, token.left_commitments):
            assert hash_commitment(share) == commitment
        for share, commitment in zip(token.right_shares, token.right_commitments):
            assert hash_commitment(share) == commitment


def test_identity_recoverable_at_every_index(token):
    for left, right in zip(token.left_shares, token.right_shares):
        assert strxor(left, right) == MARKER + b"alice"


def test_canonical_string(token):
    s = str(token)
    tag, amount, token_id, left, right = s.split("-")
    assert tag == BANK_TAG
    assert amount == "20"
    assert token_id == token.id
    assert tuple(left.split(",")) == token.left_commitments
    assert tuple(right.split(",")) == token.right_commitments
    assert CanonicalToken.parse(s) == token.canonical


def test_parse_rejects_malformed(token):
    s = str(token)
    with pytest.raises(MalformedToken):
        CanonicalToken.parse("FAKE_BANK" + s[len(BANK_TAG):])
    with pytest.raises(MalformedToken):
        CanonicalToken.parse(s.rsplit(",", 1)[0])
    with pytest.raises(MalformedToken):
        CanonicalToken.parse(s.replace("-20-", "-0-"))
    with pytest.raises(MalformedToken):
        CanonicalToken.parse(s + "-extra")


def test_parse_rejects_leading_zero_amount(token):
    s = str(token)
    with pytest.raises(MalformedToken):
        CanonicalToken.parse(s.replace("-20-", "-020-"))
    assert str(CanonicalToken.parse(s)) == s


@pytest.mark.parametrize("amount", [0, -5, 2.5, True, "20"])
def test_issue_rejects_invalid_amount(bank_key, amount):
    with pytest.raises(InvalidAmount):
        TokenIssuer(bank_key.public).issue("alice", amount)


def test_issue_rejects_empty_identity(bank_key):
    with pytest.raises(EmptyIdentity):
        TokenIssuer(bank_key.public).issue("", 20)


def test_issued_token_is_unsigned(bank_key):
    token = TokenIssuer(bank_key.public).issue("alice", 20)
    assert not token.is_signed
    assert token.blinded_digest is not None
    assert token.bank_public_key == bank_key.public


def test_unblind_only_once(bank, token):
    with pytest.raises(TokenAlreadySigned):
        token.unblind(bank.sign(token.blinded_digest))
    with pytest.raises(TokenAlreadySigned):
        token.signature = 1


def test_public_fields_fixed_after_issuance(token):
    for name, value in [
        ("amount", 2000),
        ("id", "0" * 32),
        ("bank_modulus", 3),
        ("bank_exponent", 3),
        ("left_commitments", ()),
        ("right_commitments", ()),
        ("blinded_digest", 1),
    ]:
        with pytest.raises(AttributeError):
            setattr(token, name, value)
    assert token.amount == 20
    assert isinstance(token.left_commitments, tuple)


def test_wrong_blinding_factor_fails_verification(bank, bank_key):
    token = TokenIssuer(bank_key.public).issue("alice", 20)
    blind_signature = bank.sign(token.blinded_digest)
    token.blinding_factor += 1
    token.unblind(blind_signature)

    result = TokenVerifier(bank_key.public).accept(token)
    assert isinstance(result.error, InvalidSignature)


def test_two_spends_each_accepted(bank_key, token):
    # Scenario A
    first = TokenVerifier(bank_key.public).accept(token)
    second = TokenVerifier(bank_key.public).accept(token)
    assert first.ok and second.ok
    assert first.record.token_id == second.record.token_id == token.id
    for result in (first, second):
        expected = token.reveal(result.record.side)
        assert list(result.record.shares) == expected


def test_unsigned_token_is_never_asked_for_shares(bank_key, monkeypatch):
    token = TokenIssuer(bank_key.public).issue("alice", 20)

    def reveal(side):
        raise AssertionError("shares requested from an unsigned token")

    monkeypatch.setattr(token, "reveal", reveal)
    result = TokenVerifier(bank_key.public).accept(token)
    assert not result.ok
    assert isinstance(result.error, InvalidSignature)
    with pytest.raises(InvalidSignature):
        result.unwrap()


def test_token_from_another_bank_rejected(bank_key, other_key):
    forged = Bank(other_key).withdraw("mallory", 1000)
    result = TokenVerifier(bank_key.public).accept(forged)
    assert isinstance(result.error, InvalidSignature)


def test_amount_change_breaks_signature(bank_key, token):
    inflated = replace(token, amount=2000)
    result = TokenVerifier(bank_key.public).accept(inflated)
    assert isinstance(result.error, InvalidSignature)


def test_malformed_token_rejected_at_spend(bank_key, token):
    truncated = replace(token, left_commitments=token.left_commitments[:COIN_RIS_LENGTH - 1])
    result = TokenVerifier(bank_key.public).accept(truncated)
    assert not result.ok
    assert isinstance(result.error, MalformedToken)


def test_share_mismatch_names_first_bad_index(bank_key, token):
    token.left_shares[3] = b"\x00" * len(token.left_shares[3])
    token.left_shares[7] = b"\x00" * len(token.left_shares[7])

    verifier = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.LEFT, Side.RIGHT]))
    result = verifier.accept(token)
    assert isinstance(result.error, ShareMismatch)
    assert result.error.index == 3
    assert result.record is None

    # the untouched side still passes
    assert verifier.accept(token).ok


def test_missing_shares_are_a_mismatch(bank_key, token):
    del token.right_shares[COIN_RIS_LENGTH - 2:]
    result = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.RIGHT])).accept(token)
    assert isinstance(result.error, ShareMismatch)
    assert result.error.index == COIN_RIS_LENGTH - 2


def test_single_reveal_is_opaque(bank_key, token):
    record = TokenVerifier(bank_key.public).accept(token).unwrap()
    assert list(record.shares) == token.reveal(record.side)
    for i, a in enumerate(record.shares):
        for b in record.shares[i + 1:]:
            assert not strxor(a, b).startswith(MARKER)


def test_double_spend_opposite_sides_exposes_owner(bank_key, token):
    # Scenario B
    first = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.LEFT])).accept(token).unwrap()
    second = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.RIGHT])).accept(token).unwrap()

    verdict = DoubleSpendAnalyzer().analyze(first, second)
    assert verdict == OwnerCheated(token_id=token.id, identity="alice")


def test_double_spend_same_side_blames_verifier(bank_key, token):
    # Scenario C
    first = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.RIGHT])).accept(token).unwrap()
    second = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.RIGHT])).accept(token).unwrap()

    verdict = DoubleSpendAnalyzer().analyze(first, second)
    assert verdict == VerifierCheated(token_id=token.id)
    assert DoubleSpendAnalyzer().analyze(first, first) == VerifierCheated(token_id=token.id)


def test_one_opposite_index_is_enough(bank):
    token = bank.withdraw("zoë", 5)
    shares = list(token.left_shares)
    first = RevealRecord(token.id, Side.LEFT, tuple(shares))
    shares[11] = token.right_shares[11]
    second = RevealRecord(token.id, Side.LEFT, tuple(shares))

    assert DoubleSpendAnalyzer().analyze(first, second) == OwnerCheated(token.id, "zoë")


def test_unrelated_differences_blame_verifier(token):
    first = RevealRecord(token.id, Side.LEFT, tuple(token.left_shares))
    forged = [bytes(len(s)) for s in token.left_shares]
    second = RevealRecord(token.id, Side.RIGHT, tuple(forged))

    assert DoubleSpendAnalyzer().analyze(first, second) == VerifierCheated(token.id)


def test_analyzer_rejects_different_tokens(bank):
    a = bank.withdraw("alice", 20)
    b = bank.withdraw("alice", 20)
    with pytest.raises(ValueError):
        DoubleSpendAnalyzer().analyze(
            RevealRecord(a.id, Side.LEFT, tuple(a.left_shares)),
            RevealRecord(b.id, Side.RIGHT, tuple(b.right_shares)),
        )


def test_ledger_flags_second_deposit(bank, bank_key, token):
    first = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.LEFT])).accept(token).unwrap()
    second = TokenVerifier(bank_key.public, rng=ScriptedRandom([Side.RIGHT])).accept(token).unwrap()

    assert token.id not in bank.ledger
    assert bank.deposit(first) is None
    assert token.id in bank.ledger
    assert bank.deposit(second) == OwnerCheated(token.id, "alice")
    assert bank.ledger.records(token.id) == (first, second)

    # a merchant replaying the first reveal is caught too
    assert bank.deposit(first) == VerifierCheated(token.id)
