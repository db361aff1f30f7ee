import pytest

from blindcash import Bank, BankKey


class ScriptedRandom:
    """Deterministic stand-in for the verifier's and agency's randomness."""

    def __init__(self, sides=(), index=0):
        self.sides = list(sides)
        self.index = index

    def choice(self, seq):
        side = self.sides.pop(0)
        assert side in seq
        return side

    def randrange(self, n):
        assert 0 <= self.index < n
        return self.index


@pytest.fixture(scope="session")
def bank_key():
    # smallest size pycryptodome accepts; keeps the suite fast
    return BankKey.generate(1024)


@pytest.fixture(scope="session")
def other_key():
    return BankKey.generate(1024)


@pytest.fixture
def bank(bank_key):
    return Bank(bank_key)


@pytest.fixture
def token(bank):
    return bank.withdraw("alice", 20)
