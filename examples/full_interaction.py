import logging

from blindcash import *

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

# Bank's key, generated once
bank_key = BankKey.generate(2048)
bank = Bank(bank_key)

## Coins

# Alice builds a coin worth 20 and has the bank sign it blindly
token = TokenIssuer(bank.public_key).issue("alice", 20)

## SEND(token.blinded_digest)
blind_signature = bank.sign(token.blinded_digest)

## RECEIVE(blind_signature)
token.unblind(blind_signature)

# Alice spends the same coin at two merchants
first = TokenVerifier(bank.public_key).accept(token).unwrap()
second = TokenVerifier(bank.public_key).accept(token).unwrap()

# Both merchants deposit what they were shown
assert bank.deposit(first) is None
verdict = bank.deposit(second)
match verdict:
    case OwnerCheated(identity=identity):
        print(f"Double spending detected for coin {token.id}: the owner {identity} cheated")
    case VerifierCheated():
        # both merchants happened to open the same side
        print(f"Double spending detected for coin {token.id}: the merchant cheated")

# A merchant replaying the first reveal frames nobody
assert bank.deposit(first) == VerifierCheated(token.id)

## Fair signing

cover_names = [
    "Agent X", "Shadow", "Ghost", "Phantom", "Nightfall",
    "Specter", "Raven", "Falcon", "Viper", "Cipher",
]
agency = FairSigningCoordinator(bank_key, content_check=diplomatic_immunity_check)
blinder = CandidateBlinder(agency.public_key, [make_document(name) for name in cover_names])

session = agency.open_session()

## SEND(blinded documents)
selected = session.submit(blinder.blinded_forms())
print(f"Spy Agency selected document index: {selected}")

## RECEIVE(indices to open) / SEND(disclosures)
disclosures = blinder.disclose(session.request_disclosures())
result = session.verify_and_sign(disclosures)

## RECEIVE(result)
signature = blinder.unblind(result)
assert blinder.verify(signature)
print(f'Unblinded signature for document "{blinder.sealed.plaintext}" verified')
